"""OAuth2 credential refresher.

Renews expired OAuth2 and OpenID Connect access tokens with the refresh
token grant (RFC 6749 Section 6).
"""

from __future__ import annotations

import logging

from toolauth.models.credentials import (
    AuthCredential,
    OAuth2Auth,
    is_oauth2_expired,
    update_credential_with_tokens,
)
from toolauth.models.errors import CredentialRefreshError, TokenError
from toolauth.models.schemes import AuthScheme, token_endpoint
from toolauth.models.tokens import ClientAuthentication, RefreshTokenRequest
from toolauth.refreshers.base import BaseCredentialRefresher
from toolauth.services.tokens import OAuth2TokenClient

logger = logging.getLogger(__name__)


class OAuth2CredentialRefresher(BaseCredentialRefresher):
    """Refreshes OAuth2 credentials in place.

    A successful refresh writes the new tokens into the credential object it
    was given and returns that same object; client id, secret and any field
    the token response leaves out are kept. Any failure leaves the
    credential untouched.
    """

    def __init__(self, timeout: float = 30.0):
        """Initialize the refresher.

        Args:
            timeout: HTTP request timeout in seconds for the token endpoint
        """
        self._token_client = OAuth2TokenClient(timeout=timeout)

    async def is_refresh_needed(
        self, credential: AuthCredential, scheme: AuthScheme | None = None
    ) -> bool:
        if credential.oauth2 is None:
            return False
        return is_oauth2_expired(credential.oauth2)

    async def refresh(
        self, credential: AuthCredential, scheme: AuthScheme | None = None
    ) -> AuthCredential:
        oauth2 = credential.oauth2
        if oauth2 is None:
            return credential
        if scheme is None:
            logger.warning("Auth scheme is required for OAuth2 credential refresh")
            return credential

        if not is_oauth2_expired(oauth2):
            return credential
        if not oauth2.refresh_token:
            logger.warning("No refresh token available, cannot refresh credential")
            return credential

        try:
            refresh_request = self._build_refresh_request(
                oauth2, oauth2.refresh_token, scheme
            )
            token_response = await self._token_client.refresh_access_token(
                refresh_request
            )
            if not token_response.is_success():
                raise CredentialRefreshError(
                    f"Token endpoint rejected refresh: {token_response.describe_error()}"
                )
        except CredentialRefreshError as e:
            logger.warning(f"OAuth2 credential not refreshed: {e}")
            return credential
        except TokenError as e:
            logger.error(f"Failed to refresh OAuth2 tokens: {e}")
            return credential

        update_credential_with_tokens(credential, token_response)
        logger.info("Successfully refreshed OAuth2 tokens")
        return credential

    def _build_refresh_request(
        self, oauth2: OAuth2Auth, refresh_token: str, scheme: AuthScheme
    ) -> RefreshTokenRequest:
        if not oauth2.client_id:
            raise CredentialRefreshError("clientId is required for token refresh")
        endpoint = token_endpoint(scheme)
        if endpoint is None:
            raise CredentialRefreshError(
                f"No token endpoint can be resolved from {scheme.type} scheme"
            )

        token_url, _ = endpoint
        return RefreshTokenRequest(
            token_endpoint=token_url,
            refresh_token=refresh_token,
            client=ClientAuthentication(
                client_id=oauth2.client_id,
                client_secret=oauth2.client_secret,
                method=oauth2.token_endpoint_auth_method,
            ),
        )

    async def close(self) -> None:
        await self._token_client.close()
