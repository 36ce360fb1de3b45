"""HTTP authentication headers for resolved credentials."""

from __future__ import annotations

import base64
import logging
from typing import assert_never

from toolauth.models.credentials import AuthCredential, AuthCredentialType
from toolauth.models.errors import AuthConfigurationError
from toolauth.models.schemes import ApiKeyScheme, AuthScheme, HttpScheme

logger = logging.getLogger(__name__)


def build_auth_headers(
    scheme: AuthScheme | None, credential: AuthCredential | None
) -> dict[str, str] | None:
    """Build the headers that authenticate a request with ``credential``.

    Returns None, with a warning, when the credential is missing, incomplete
    or does not fit the scheme.

    Raises:
        AuthConfigurationError: If an API key is meant to go anywhere other
            than a header
    """
    if credential is None:
        return None

    match credential.auth_type:
        case AuthCredentialType.OAUTH2 | AuthCredentialType.OPEN_ID_CONNECT:
            return _oauth2_headers(credential)
        case AuthCredentialType.HTTP:
            return _http_headers(scheme, credential)
        case AuthCredentialType.API_KEY:
            return _api_key_headers(scheme, credential)
        case AuthCredentialType.SERVICE_ACCOUNT:
            logger.warning(
                "Service account credentials must be exchanged for an access "
                "token before building auth headers"
            )
            return None
        case _:
            assert_never(credential.auth_type)


def _oauth2_headers(credential: AuthCredential) -> dict[str, str] | None:
    oauth2 = credential.oauth2
    if oauth2 is None or not oauth2.access_token:
        logger.warning("OAuth2 credential provided but access token is missing")
        return None
    token_type = oauth2.token_type or "Bearer"
    if token_type.lower() == "bearer":
        token_type = "Bearer"
    return {"Authorization": f"{token_type} {oauth2.access_token}"}


def _http_headers(
    scheme: AuthScheme | None, credential: AuthCredential
) -> dict[str, str] | None:
    if not isinstance(scheme, HttpScheme):
        logger.warning("HTTP credential provided, but auth scheme is not HTTP type")
        return None
    if credential.http is None:
        logger.warning("HTTP credential provided without its http payload")
        return None

    credentials = credential.http.credentials
    scheme_name = scheme.scheme.lower()
    if scheme_name == "bearer" and credentials.token:
        return {"Authorization": f"Bearer {credentials.token}"}
    if scheme_name == "basic":
        if not credentials.username or not credentials.password:
            logger.warning("Basic auth scheme missing username or password")
            return None
        encoded = base64.b64encode(
            f"{credentials.username}:{credentials.password}".encode()
        ).decode("ascii")
        return {"Authorization": f"Basic {encoded}"}
    if credentials.token:
        return {"Authorization": f"{scheme.scheme} {credentials.token}"}

    logger.warning(f"Unsupported or incomplete HTTP auth scheme '{scheme_name}'")
    return None


def _api_key_headers(
    scheme: AuthScheme | None, credential: AuthCredential
) -> dict[str, str] | None:
    if not isinstance(scheme, ApiKeyScheme):
        logger.warning(
            "API key credential provided, but auth scheme is not apiKey type"
        )
        return None
    if credential.api_key is None:
        logger.warning("API key credential provided without its apiKey payload")
        return None
    if scheme.location != "header":
        message = (
            "Only header-based API key authentication is supported. "
            f"Configured location: {scheme.location}"
        )
        logger.error(message)
        raise AuthConfigurationError(message)
    return {scheme.name: credential.api_key.api_key}
