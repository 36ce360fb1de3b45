"""Authorization flow models.

Contains the authorization request the user is sent to and the redirect
response the authorization server sends back.
"""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit


@dataclass(frozen=True)
class AuthorizationRequest:
    """Authorization request parameters for the authorization code flow."""

    authorization_endpoint: str
    client_id: str
    redirect_uri: str
    scopes: tuple[str, ...]
    state: str
    audience: str | None = None

    def build_authorization_url(self) -> str:
        """Build the complete authorization URL.

        Query parameters already present on the endpoint are kept ahead of
        the ones added here; ours win on a name clash.
        """
        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": " ".join(self.scopes),
            "state": self.state,
            "access_type": "offline",
            "prompt": "consent",
        }
        if self.audience:
            params["audience"] = self.audience

        parts = urlsplit(self.authorization_endpoint)
        if not parts.scheme or not parts.netloc:
            raise ValueError(
                f"Authorization endpoint is not an absolute URL: "
                f"{self.authorization_endpoint}"
            )
        existing = [
            (key, value)
            for key, value in parse_qsl(parts.query, keep_blank_values=True)
            if key not in params
        ]
        query = urlencode(existing + list(params.items()))
        return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))


@dataclass(frozen=True)
class AuthorizationResponse:
    code: str | None = None
    state: str | None = None
    error: str | None = None
    error_description: str | None = None
    error_uri: str | None = None

    def is_success(self) -> bool:
        return self.error is None and self.code is not None

    def is_error(self) -> bool:
        return self.error is not None
