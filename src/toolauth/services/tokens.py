"""OAuth 2.0 token endpoint client.

Implements the RFC 6749 token endpoint interactions used by the exchangers
and refreshers: authorization code exchange, refresh grant and client
credentials grant.
"""

from __future__ import annotations

import logging

import httpx
from pydantic import ValidationError

from toolauth.models.errors import TokenError
from toolauth.models.tokens import (
    AuthorizationCodeTokenRequest,
    ClientCredentialsTokenRequest,
    RefreshTokenRequest,
    TokenRequest,
    TokenResponse,
)

logger = logging.getLogger(__name__)


class OAuth2TokenClient:
    """Talks to OAuth 2.0 token endpoints.

    Requests are sent as application/x-www-form-urlencoded. Client
    credentials go in the form body, or in an HTTP Basic header when the
    credential's ``tokenEndpointAuthMethod`` asks for it.
    """

    def __init__(self, timeout: float = 30.0):
        """Initialize the token client.

        Args:
            timeout: HTTP request timeout in seconds
        """
        self.timeout = timeout
        self._http_client = httpx.AsyncClient(timeout=timeout)

    async def exchange_authorization_code(
        self, token_request: AuthorizationCodeTokenRequest
    ) -> TokenResponse:
        """Exchange an authorization code for tokens (RFC 6749 Section 4.1.3).

        Raises:
            TokenError: If the request fails or the response cannot be parsed
        """
        logger.debug(f"Exchanging authorization code at {token_request.token_endpoint}")
        return await self._post(token_request, "token exchange")

    async def refresh_access_token(
        self, refresh_request: RefreshTokenRequest
    ) -> TokenResponse:
        """Refresh an access token (RFC 6749 Section 6).

        Raises:
            TokenError: If the request fails or the response cannot be parsed
        """
        logger.debug(f"Refreshing access token at {refresh_request.token_endpoint}")
        return await self._post(refresh_request, "token refresh")

    async def request_client_credentials(
        self, token_request: ClientCredentialsTokenRequest
    ) -> TokenResponse:
        """Obtain a token with the client credentials grant (RFC 6749 Section 4.4).

        Raises:
            TokenError: If the request fails or the response cannot be parsed
        """
        logger.debug(
            f"Requesting client credentials token at {token_request.token_endpoint}"
        )
        return await self._post(token_request, "client credentials grant")

    async def _post(self, token_request: TokenRequest, operation: str) -> TokenResponse:
        headers = {
            "Content-Type": "application/x-www-form-urlencoded",
            "Accept": "application/json",
        }
        client = token_request.client
        auth = None
        if client.uses_basic_auth:
            auth = httpx.BasicAuth(client.client_id, client.client_secret or "")

        form_data = token_request.to_form_data()

        # Log request details (without sensitive data)
        logger.debug(
            f"Token request: grant_type={form_data['grant_type']}, "
            f"client_id={client.client_id}, "
            f"basic_auth={client.uses_basic_auth}"
        )

        try:
            response = await self._http_client.post(
                token_request.token_endpoint,
                data=form_data,
                headers=headers,
                auth=auth,
            )
        except httpx.HTTPError as e:
            raise TokenError(f"HTTP error during {operation}: {e}") from e
        except Exception as e:
            raise TokenError(f"Unexpected error during {operation}: {e}") from e

        return self._parse_token_response(response)

    def _parse_token_response(self, response: httpx.Response) -> TokenResponse:
        """Parse a token endpoint response.

        Success (200) and error (400+) bodies are both JSON (RFC 6749
        Section 5). Error bodies are returned as a TokenResponse carrying the
        error fields.

        Raises:
            TokenError: If the body is not a valid token response
        """
        try:
            response_data = response.json()
            token_response = TokenResponse.model_validate(response_data)
        except (ValueError, ValidationError) as e:
            raise TokenError(f"Invalid token response format: {e}") from e

        if response.status_code == 200:
            if token_response.access_token is None:
                raise TokenError("Token response missing required access_token")
            logger.info("Token request successful")
            return token_response

        logger.warning(
            f"Token request failed with {response.status_code}: "
            f"{token_response.describe_error()}"
        )
        if token_response.error is None:
            token_response.error = f"http_{response.status_code}"
        return token_response

    async def close(self) -> None:
        """Close the HTTP client and clean up resources."""
        await self._http_client.aclose()
