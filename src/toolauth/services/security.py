"""Security utilities for OAuth flows.

Provides the injectable secure-random capability behind anti-CSRF state
generation, state validation and parsing of the authorization redirect.
"""

from __future__ import annotations

import secrets
from typing import Protocol
from urllib.parse import parse_qs, urlparse

from toolauth.models.errors import AuthorizationCallbackError, StateValidationError
from toolauth.models.flow import AuthorizationResponse

STATE_BYTES = 32


class SecureRandom(Protocol):
    """Source of cryptographically secure random bytes."""

    def token_bytes(self, nbytes: int) -> bytes: ...


class SystemRandom:
    """SecureRandom backed by the operating system CSPRNG."""

    def token_bytes(self, nbytes: int) -> bytes:
        return secrets.token_bytes(nbytes)


def generate_state(random: SecureRandom) -> str:
    """Generate an anti-CSRF state parameter.

    Returns:
        32 random bytes as 64 lowercase hex characters
    """
    return random.token_bytes(STATE_BYTES).hex()


def validate_state(expected: str, actual: str) -> None:
    """Validate state parameter matches expected value.

    Args:
        expected: State parameter from original authorization request
        actual: State parameter from callback URL

    Raises:
        StateValidationError: If state parameters don't match
    """
    if not secrets.compare_digest(expected, actual):
        raise StateValidationError("State parameter mismatch - possible CSRF attack")


def parse_authorization_response(callback_url: str) -> AuthorizationResponse:
    """Parse the redirect URL the authorization server sent the user to.

    Raises:
        AuthorizationCallbackError: If the URL cannot be parsed
    """
    try:
        parsed = urlparse(callback_url)
        query_params = parse_qs(parsed.query)
    except ValueError as e:
        raise AuthorizationCallbackError(f"Failed to parse callback URL: {e}") from e

    # Extract single values from query parameter lists
    def get_single_param(key: str) -> str | None:
        values = query_params.get(key, [])
        return values[0] if values else None

    return AuthorizationResponse(
        code=get_single_param("code"),
        state=get_single_param("state"),
        error=get_single_param("error"),
        error_description=get_single_param("error_description"),
        error_uri=get_single_param("error_uri"),
    )
