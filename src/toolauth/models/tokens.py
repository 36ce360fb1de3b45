"""Token endpoint request and response models (RFC 6749).

Requests are immutable dataclasses that know how to render themselves as
form data; the response is a pydantic model covering both success
(Section 5.1) and error (Section 5.2) bodies.
"""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel

# tokenEndpointAuthMethod values that put client credentials in an HTTP Basic
# header instead of the request body.
BASIC_AUTH_METHODS = frozenset({"client_secret_basic", "header"})


@dataclass(frozen=True)
class ClientAuthentication:
    """Client id/secret plus where the token endpoint expects them."""

    client_id: str
    client_secret: str | None = None
    method: str | None = None

    @property
    def uses_basic_auth(self) -> bool:
        return self.client_secret is not None and self.method in BASIC_AUTH_METHODS

    def to_form_data(self) -> dict[str, str]:
        if self.uses_basic_auth:
            return {}
        data = {"client_id": self.client_id}
        if self.client_secret:
            data["client_secret"] = self.client_secret
        return data


@dataclass(frozen=True)
class AuthorizationCodeTokenRequest:
    """Authorization code exchange (RFC 6749 Section 4.1.3)."""

    token_endpoint: str
    code: str
    client: ClientAuthentication
    redirect_uri: str | None = None
    scope: str | None = None
    grant_type: str = "authorization_code"

    def to_form_data(self) -> dict[str, str]:
        """Convert to form data for application/x-www-form-urlencoded request.

        Token requests must use form encoding, not JSON (RFC 6749 Section 4.1.3).
        """
        data = {"grant_type": self.grant_type, "code": self.code}
        if self.redirect_uri:
            data["redirect_uri"] = self.redirect_uri
        if self.scope:
            data["scope"] = self.scope
        data.update(self.client.to_form_data())
        return data


@dataclass(frozen=True)
class RefreshTokenRequest:
    """Access token refresh (RFC 6749 Section 6)."""

    token_endpoint: str
    refresh_token: str
    client: ClientAuthentication
    scope: str | None = None
    grant_type: str = "refresh_token"

    def to_form_data(self) -> dict[str, str]:
        data = {"grant_type": self.grant_type, "refresh_token": self.refresh_token}
        if self.scope:
            data["scope"] = self.scope
        data.update(self.client.to_form_data())
        return data


@dataclass(frozen=True)
class ClientCredentialsTokenRequest:
    """Client credentials grant (RFC 6749 Section 4.4)."""

    token_endpoint: str
    client: ClientAuthentication
    scope: str | None = None
    audience: str | None = None
    grant_type: str = "client_credentials"

    def to_form_data(self) -> dict[str, str]:
        data = {"grant_type": self.grant_type}
        if self.scope:
            data["scope"] = self.scope
        if self.audience:
            data["audience"] = self.audience
        data.update(self.client.to_form_data())
        return data


TokenRequest = AuthorizationCodeTokenRequest | RefreshTokenRequest | ClientCredentialsTokenRequest


class TokenResponse(BaseModel):
    """OAuth 2.0 token response (RFC 6749 Section 5).

    Represents the response from a token endpoint, including both
    successful responses (Section 5.1) and error responses (Section 5.2).
    """

    # Success response fields (RFC 6749 Section 5.1)
    access_token: str | None = None
    token_type: str | None = None
    expires_in: int | None = None  # Seconds until expiry
    refresh_token: str | None = None
    scope: str | None = None
    id_token: str | None = None

    # Error response fields (RFC 6749 Section 5.2)
    error: str | None = None
    error_description: str | None = None
    error_uri: str | None = None

    def is_success(self) -> bool:
        """Check if token response indicates success."""
        return self.error is None and self.access_token is not None

    def is_error(self) -> bool:
        """Check if token response indicates an error."""
        return self.error is not None

    def describe_error(self) -> str:
        description = self.error_description or "No description provided"
        return f"{self.error or 'missing_access_token'} - {description}"
