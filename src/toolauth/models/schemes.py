"""Authentication scheme models mirroring OpenAPI v3 security schemes.

An auth scheme describes *how* a protected API expects to be called. The
union is closed and discriminated by ``type``; every helper in this module
matches each variant explicitly so a new scheme kind shows up as an
unhandled case instead of silently falling through.
"""

from __future__ import annotations

from collections.abc import Iterator
from enum import Enum
from typing import Annotated, Any, Literal, Union, assert_never

from pydantic import Field, TypeAdapter

from toolauth.models.base import WireModel


class OAuthGrantType(str, Enum):
    """OAuth2 grant types, one per OpenAPI flow."""

    AUTHORIZATION_CODE = "authorization_code"
    CLIENT_CREDENTIALS = "client_credentials"
    IMPLICIT = "implicit"
    PASSWORD = "password"


class OAuthFlow(WireModel):
    """A single OAuth2 flow (OpenAPI ``OAuthFlowObject``).

    URLs are optional here because schemes with an ``issuerUrl`` may leave
    them for discovery to fill in.
    """

    authorization_url: str | None = Field(default=None, alias="authorizationUrl")
    token_url: str | None = Field(default=None, alias="tokenUrl")
    refresh_url: str | None = Field(default=None, alias="refreshUrl")
    scopes: dict[str, str] = Field(default_factory=dict)
    """
    Scope name to human-readable description.
    """


class OAuthFlows(WireModel):
    implicit: OAuthFlow | None = None
    password: OAuthFlow | None = None
    client_credentials: OAuthFlow | None = Field(
        default=None, alias="clientCredentials"
    )
    authorization_code: OAuthFlow | None = Field(
        default=None, alias="authorizationCode"
    )

    def populated(self) -> Iterator[tuple[OAuthGrantType, OAuthFlow]]:
        """Yield configured flows in resolution precedence order."""
        for attribute, grant in OAUTH2_FLOW_PRECEDENCE:
            flow = getattr(self, attribute)
            if flow is not None:
                yield grant, flow


# One order for every resolution site: scope extraction, authorization
# endpoint, token endpoint and grant selection.
OAUTH2_FLOW_PRECEDENCE: tuple[tuple[str, OAuthGrantType], ...] = (
    ("authorization_code", OAuthGrantType.AUTHORIZATION_CODE),
    ("client_credentials", OAuthGrantType.CLIENT_CREDENTIALS),
    ("implicit", OAuthGrantType.IMPLICIT),
    ("password", OAuthGrantType.PASSWORD),
)


class OAuth2Scheme(WireModel):
    type: Literal["oauth2"] = "oauth2"
    flows: OAuthFlows = Field(default_factory=OAuthFlows)
    description: str | None = None
    issuer_url: str | None = Field(default=None, alias="issuerUrl")
    """
    Authorization server issuer used to discover flow URLs left blank.
    """


class OpenIdConnectScheme(WireModel):
    """OpenID Connect scheme with its discovered endpoints inlined."""

    type: Literal["openIdConnect"] = "openIdConnect"
    authorization_endpoint: str = Field(alias="authorizationEndpoint")
    token_endpoint: str = Field(alias="tokenEndpoint")
    scopes: list[str] = Field(default_factory=list)
    open_id_connect_url: str | None = Field(default=None, alias="openIdConnectUrl")
    userinfo_endpoint: str | None = Field(default=None, alias="userinfoEndpoint")
    revocation_endpoint: str | None = Field(default=None, alias="revocationEndpoint")
    grant_types_supported: list[str] | None = Field(
        default=None, alias="grantTypesSupported"
    )
    description: str | None = None


class HttpScheme(WireModel):
    type: Literal["http"] = "http"
    scheme: str
    """
    HTTP auth scheme name, e.g. "bearer" or "basic".
    """
    bearer_format: str | None = Field(default=None, alias="bearerFormat")
    description: str | None = None


class ApiKeyScheme(WireModel):
    type: Literal["apiKey"] = "apiKey"
    name: str
    location: Literal["header", "query", "cookie"] = Field(alias="in")
    description: str | None = None


AuthScheme = Annotated[
    Union[OAuth2Scheme, OpenIdConnectScheme, HttpScheme, ApiKeyScheme],
    Field(discriminator="type"),
]

_AUTH_SCHEME_ADAPTER: TypeAdapter[AuthScheme] = TypeAdapter(AuthScheme)


def parse_auth_scheme(data: AuthScheme | dict[str, Any]) -> AuthScheme:
    """Validate an OpenAPI security scheme dict into the matching model."""
    if isinstance(data, (OAuth2Scheme, OpenIdConnectScheme, HttpScheme, ApiKeyScheme)):
        return data
    return _AUTH_SCHEME_ADAPTER.validate_python(data)


def uses_oauth_flow(scheme: AuthScheme) -> bool:
    """Whether the scheme goes through authorization and token exchange."""
    match scheme:
        case OAuth2Scheme() | OpenIdConnectScheme():
            return True
        case HttpScheme() | ApiKeyScheme():
            return False
        case _:
            assert_never(scheme)


def scheme_scopes(scheme: AuthScheme | None) -> list[str] | None:
    """Scopes declared by the scheme.

    OAuth2 schemes use the first configured flow; OIDC schemes use their flat
    scope list. Schemes without scopes return None.
    """
    match scheme:
        case None:
            return None
        case OAuth2Scheme():
            for _, flow in scheme.flows.populated():
                return list(flow.scopes)
            return None
        case OpenIdConnectScheme():
            return list(scheme.scopes)
        case HttpScheme() | ApiKeyScheme():
            return None
        case _:
            assert_never(scheme)


def authorization_endpoint(scheme: AuthScheme) -> tuple[str, list[str]] | None:
    """Resolve the endpoint the user is sent to, with the scopes to request.

    Flows without an authorization URL (client credentials, password) fall
    back to their token URL.
    """
    match scheme:
        case OAuth2Scheme():
            for grant, flow in scheme.flows.populated():
                if grant in (OAuthGrantType.AUTHORIZATION_CODE, OAuthGrantType.IMPLICIT):
                    url = flow.authorization_url
                else:
                    url = flow.token_url
                if url:
                    return url, list(flow.scopes)
            return None
        case OpenIdConnectScheme():
            if not scheme.authorization_endpoint:
                return None
            return scheme.authorization_endpoint, list(scheme.scopes)
        case HttpScheme() | ApiKeyScheme():
            return None
        case _:
            assert_never(scheme)


def token_endpoint(scheme: AuthScheme) -> tuple[str, str | None] | None:
    """Resolve ``(token_url, authorization_url)`` for code exchange and refresh."""
    match scheme:
        case OAuth2Scheme():
            for _, flow in scheme.flows.populated():
                if flow.token_url:
                    return flow.token_url, flow.authorization_url
            return None
        case OpenIdConnectScheme():
            if not scheme.token_endpoint:
                return None
            return scheme.token_endpoint, scheme.authorization_endpoint
        case HttpScheme() | ApiKeyScheme():
            return None
        case _:
            assert_never(scheme)


def grant_type(scheme: AuthScheme) -> OAuthGrantType | None:
    """The grant a token exchange should use for this scheme."""
    match scheme:
        case OAuth2Scheme():
            for grant, _ in scheme.flows.populated():
                return grant
            return None
        case OpenIdConnectScheme():
            if "client_credentials" in (scheme.grant_types_supported or []):
                return OAuthGrantType.CLIENT_CREDENTIALS
            return OAuthGrantType.AUTHORIZATION_CODE
        case HttpScheme() | ApiKeyScheme():
            return None
        case _:
            assert_never(scheme)
