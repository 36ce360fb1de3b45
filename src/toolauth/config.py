from __future__ import annotations

from dataclasses import dataclass

DEFAULT_GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"


@dataclass(frozen=True)
class AuthClientConfig:
    """Runtime settings shared by the token, discovery and exchange clients."""

    timeout: float = 30.0
    """
    HTTP timeout in seconds for token endpoint requests.
    """

    discovery_timeout: float = 5.0
    """
    HTTP timeout in seconds for each metadata discovery request.
    """

    default_token_lifetime: int = 3600
    """
    Assumed access token lifetime in seconds when the provider reports none.
    """

    default_token_uri: str = DEFAULT_GOOGLE_TOKEN_URI
    """
    Token URI for service account keys that do not carry their own.
    """

    def __post_init__(self) -> None:
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        if self.discovery_timeout <= 0:
            raise ValueError("discovery_timeout must be positive")
        if self.default_token_lifetime <= 0:
            raise ValueError("default_token_lifetime must be positive")
