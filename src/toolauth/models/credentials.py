"""Credential models and the token-lifecycle helpers that operate on them.

An ``AuthCredential`` is tagged by ``auth_type`` and carries exactly one
payload matching that tag. OAuth2 payloads are the working value that moves
through the authorization state machine:

    NO_CREDENTIAL -> AWAITING_USER_CONSENT -> EXCHANGED -> REFRESH_NEEDED
                                                  ^              |
                                                  +--------------+
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import Field, model_validator

from toolauth.models.base import WireModel

if TYPE_CHECKING:
    from toolauth.models.tokens import TokenResponse


class AuthCredentialType(str, Enum):
    API_KEY = "apiKey"
    HTTP = "http"
    OAUTH2 = "oauth2"
    OPEN_ID_CONNECT = "openIdConnect"
    SERVICE_ACCOUNT = "serviceAccount"


class OAuth2Auth(WireModel):
    """OAuth2 client configuration plus whatever tokens have been obtained."""

    client_id: str | None = Field(default=None, alias="clientId")
    client_secret: str | None = Field(default=None, alias="clientSecret")
    redirect_uri: str | None = Field(default=None, alias="redirectUri")
    audience: str | None = None
    auth_uri: str | None = Field(default=None, alias="authUri")
    state: str | None = None
    auth_code: str | None = Field(default=None, alias="authCode")
    auth_response_uri: str | None = Field(default=None, alias="authResponseUri")
    """
    Full redirect URL the authorization server sent the user back to.
    """
    access_token: str | None = Field(default=None, alias="accessToken")
    refresh_token: str | None = Field(default=None, alias="refreshToken")
    expires_in: int | None = Field(default=None, alias="expiresIn")
    expires_at: int | None = Field(default=None, alias="expiresAt")
    """
    Epoch seconds. The only field consulted for expiry.
    """
    token_type: str | None = Field(default=None, alias="tokenType")
    scope: str | None = None
    token_endpoint_auth_method: str | None = Field(
        default=None, alias="tokenEndpointAuthMethod"
    )


class ServiceAccountCredential(WireModel):
    """Google-style service account key, as found in a JSON key file."""

    type: str = "service_account"
    client_email: str = Field(alias="clientEmail")
    private_key: str = Field(alias="privateKey")
    private_key_id: str | None = Field(default=None, alias="privateKeyId")
    project_id: str | None = Field(default=None, alias="projectId")
    client_id: str | None = Field(default=None, alias="clientId")
    auth_uri: str | None = Field(default=None, alias="authUri")
    token_uri: str | None = Field(default=None, alias="tokenUri")
    auth_provider_x509_cert_url: str | None = Field(
        default=None, alias="authProviderX509CertUrl"
    )
    client_x509_cert_url: str | None = Field(default=None, alias="clientX509CertUrl")
    universe_domain: str | None = Field(default=None, alias="universeDomain")


class ServiceAccount(WireModel):
    service_account_credential: ServiceAccountCredential | None = Field(
        default=None, alias="serviceAccountCredential"
    )
    scopes: list[str] | None = None
    use_default_credential: bool = Field(default=False, alias="useDefaultCredential")
    quota_project_id: str | None = Field(default=None, alias="quotaProjectId")


class HttpCredentials(WireModel):
    token: str | None = None
    username: str | None = None
    password: str | None = None


class HttpAuth(WireModel):
    scheme: str
    credentials: HttpCredentials = Field(default_factory=HttpCredentials)


class ApiKeyAuth(WireModel):
    api_key: str = Field(alias="apiKey")


_PAYLOAD_FIELDS: dict[AuthCredentialType, str] = {
    AuthCredentialType.API_KEY: "api_key",
    AuthCredentialType.HTTP: "http",
    AuthCredentialType.OAUTH2: "oauth2",
    AuthCredentialType.OPEN_ID_CONNECT: "oauth2",
    AuthCredentialType.SERVICE_ACCOUNT: "service_account",
}


class AuthCredential(WireModel):
    """A credential tagged by ``auth_type`` with one matching payload.

    OIDC credentials share the ``oauth2`` payload. A credential may be built
    with its payload still missing (exchangers report that), but a payload
    that does not belong to the tag is rejected.
    """

    auth_type: AuthCredentialType = Field(alias="authType")
    oauth2: OAuth2Auth | None = None
    service_account: ServiceAccount | None = Field(default=None, alias="serviceAccount")
    http: HttpAuth | None = None
    api_key: ApiKeyAuth | None = Field(default=None, alias="apiKey")

    @model_validator(mode="after")
    def validate_payload_matches_type(self) -> AuthCredential:
        expected = _PAYLOAD_FIELDS[self.auth_type]
        for field_name in set(_PAYLOAD_FIELDS.values()):
            if field_name != expected and getattr(self, field_name) is not None:
                raise ValueError(
                    f"{self.auth_type.value} credential cannot carry a "
                    f"'{field_name}' payload"
                )
        return self


@dataclass(frozen=True)
class ExchangeResult:
    """Outcome of an exchange.

    ``was_exchanged`` is False when the input was already usable and is
    returned as-is.
    """

    credential: AuthCredential
    was_exchanged: bool


class CredentialState(str, Enum):
    NO_CREDENTIAL = "no_credential"
    AWAITING_USER_CONSENT = "awaiting_user_consent"
    EXCHANGED = "exchanged"
    REFRESH_NEEDED = "refresh_needed"


def now_epoch() -> int:
    return int(time.time())


def is_oauth2_expired(oauth2: OAuth2Auth, now: int | None = None) -> bool:
    """Check whether an OAuth2 access token has expired.

    Expiry is inclusive: a token is expired from ``expires_at`` onwards. A
    token without ``expires_at`` never expires.

    Args:
        oauth2: OAuth2 payload to check
        now: Current epoch seconds; read once from the clock when omitted
    """
    if oauth2.expires_at is None:
        return False
    if now is None:
        now = now_epoch()
    return now >= oauth2.expires_at


def is_simple_credential(credential: AuthCredential) -> bool:
    """API keys and HTTP credentials are used as-is, never exchanged or refreshed."""
    return credential.auth_type in (AuthCredentialType.API_KEY, AuthCredentialType.HTTP)


def update_credential_with_tokens(
    credential: AuthCredential,
    token_response: TokenResponse,
    now: int | None = None,
) -> None:
    """Merge a token endpoint response into the credential in place.

    Fields the response leaves out keep their current values, so a refresh
    response without a new refresh token preserves the old one.
    """
    if credential.oauth2 is None:
        credential.oauth2 = OAuth2Auth()
    oauth2 = credential.oauth2

    if token_response.access_token:
        oauth2.access_token = token_response.access_token
    if token_response.refresh_token:
        oauth2.refresh_token = token_response.refresh_token
    if token_response.expires_in is not None:
        if now is None:
            now = now_epoch()
        oauth2.expires_in = token_response.expires_in
        oauth2.expires_at = now + token_response.expires_in
    if token_response.token_type:
        oauth2.token_type = token_response.token_type
    if token_response.scope:
        oauth2.scope = token_response.scope


def credential_state(
    credential: AuthCredential | None, now: int | None = None
) -> CredentialState:
    """Classify where an exchanged credential sits in the OAuth2 flow."""
    if credential is None:
        return CredentialState.NO_CREDENTIAL

    oauth2 = credential.oauth2
    if oauth2 is None:
        # Non-OAuth credentials are usable as soon as they exist.
        return CredentialState.EXCHANGED
    if oauth2.access_token:
        if is_oauth2_expired(oauth2, now):
            return CredentialState.REFRESH_NEEDED
        return CredentialState.EXCHANGED
    if oauth2.auth_uri:
        return CredentialState.AWAITING_USER_CONSENT
    return CredentialState.NO_CREDENTIAL


def credential_from_state(value: Any) -> AuthCredential | None:
    """Read a credential kept in session state.

    Persisted or caller-written state holds the wire dict rather than the
    model; both forms are accepted.
    """
    if value is None or isinstance(value, AuthCredential):
        return value
    return AuthCredential.model_validate(value)
