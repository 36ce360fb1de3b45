"""OAuth2 credential exchanger.

Exchanges an authorization code (from the user's redirect response) or the
client's own credentials for tokens at the scheme's token endpoint.
"""

from __future__ import annotations

import logging

from toolauth.exchangers.base import BaseCredentialExchanger
from toolauth.models.credentials import (
    AuthCredential,
    ExchangeResult,
    OAuth2Auth,
    update_credential_with_tokens,
)
from toolauth.models.errors import (
    AuthorizationCallbackError,
    CredentialExchangeError,
    TokenError,
)
from toolauth.models.schemes import (
    AuthScheme,
    OAuthGrantType,
    grant_type,
    scheme_scopes,
    token_endpoint,
)
from toolauth.models.tokens import (
    AuthorizationCodeTokenRequest,
    ClientAuthentication,
    ClientCredentialsTokenRequest,
    TokenResponse,
)
from toolauth.services.security import parse_authorization_response, validate_state
from toolauth.services.tokens import OAuth2TokenClient

logger = logging.getLogger(__name__)


class OAuth2CredentialExchanger(BaseCredentialExchanger):
    """Exchanges OAuth2 and OpenID Connect credentials for tokens.

    The grant comes from the scheme: authorization code or client
    credentials. Implicit and password flows cannot be exchanged here.
    The input credential is never modified; a successful exchange returns a
    copy carrying the new tokens.
    """

    def __init__(self, timeout: float = 30.0):
        """Initialize the exchanger.

        Args:
            timeout: HTTP request timeout in seconds for the token endpoint
        """
        self._token_client = OAuth2TokenClient(timeout=timeout)

    async def exchange(
        self, credential: AuthCredential, scheme: AuthScheme | None = None
    ) -> ExchangeResult:
        if scheme is None:
            raise CredentialExchangeError(
                "auth scheme is required for OAuth2 credential exchange"
            )
        oauth2 = credential.oauth2
        if oauth2 is None:
            raise CredentialExchangeError(
                f"oauth2 field is required for {credential.auth_type.value} credentials"
            )

        if oauth2.access_token:
            return ExchangeResult(credential=credential, was_exchanged=False)

        endpoint = token_endpoint(scheme)
        if endpoint is None:
            raise CredentialExchangeError(
                f"No token endpoint can be resolved from {scheme.type} scheme"
            )
        if not oauth2.client_id or not oauth2.client_secret:
            raise CredentialExchangeError(
                "clientId and clientSecret are required for OAuth2 credential exchange"
            )

        token_url, _ = endpoint
        client = ClientAuthentication(
            client_id=oauth2.client_id,
            client_secret=oauth2.client_secret,
            method=oauth2.token_endpoint_auth_method,
        )

        grant = grant_type(scheme)
        try:
            match grant:
                case OAuthGrantType.AUTHORIZATION_CODE:
                    token_response = await self._token_client.exchange_authorization_code(
                        AuthorizationCodeTokenRequest(
                            token_endpoint=token_url,
                            code=self._resolve_authorization_code(oauth2),
                            client=client,
                            redirect_uri=oauth2.redirect_uri,
                            scope=oauth2.scope,
                        )
                    )
                case OAuthGrantType.CLIENT_CREDENTIALS:
                    scope = oauth2.scope or " ".join(scheme_scopes(scheme) or []) or None
                    token_response = await self._token_client.request_client_credentials(
                        ClientCredentialsTokenRequest(
                            token_endpoint=token_url,
                            client=client,
                            scope=scope,
                            audience=oauth2.audience,
                        )
                    )
                case _:
                    raise CredentialExchangeError(
                        f"Unsupported OAuth2 grant type for exchange: {grant}"
                    )
        except TokenError as e:
            logger.error(f"OAuth2 token request to {token_url} failed: {e}")
            raise CredentialExchangeError(f"OAuth2 token request failed: {e}") from e

        return self._build_result(credential, token_response, grant)

    def _resolve_authorization_code(self, oauth2: OAuth2Auth) -> str:
        """Find the authorization code, parsing the redirect URL if needed.

        When the credential carries the state it was issued with, the state in
        the redirect must match it.
        """
        if oauth2.auth_code:
            return oauth2.auth_code
        if not oauth2.auth_response_uri:
            raise CredentialExchangeError(
                "No authorization code or authorization response URI in credential"
            )

        try:
            response = parse_authorization_response(oauth2.auth_response_uri)
            if response.is_error():
                raise AuthorizationCallbackError(
                    f"Authorization failed: {response.error} - "
                    f"{response.error_description or 'No description provided'}"
                )
            if oauth2.state:
                if response.state is None:
                    raise AuthorizationCallbackError(
                        "Missing state parameter in authorization response"
                    )
                validate_state(oauth2.state, response.state)
        except AuthorizationCallbackError as e:
            logger.error(f"Invalid authorization response: {e}")
            raise CredentialExchangeError(f"Invalid authorization response: {e}") from e

        if not response.code:
            raise CredentialExchangeError(
                "Missing authorization code in authorization response"
            )
        return response.code

    def _build_result(
        self,
        credential: AuthCredential,
        token_response: TokenResponse,
        grant: OAuthGrantType,
    ) -> ExchangeResult:
        if not token_response.is_success():
            logger.error(
                f"OAuth2 {grant.value} exchange rejected: "
                f"{token_response.describe_error()}"
            )
            raise CredentialExchangeError(
                f"OAuth2 {grant.value} exchange failed: {token_response.describe_error()}"
            )

        exchanged = credential.model_copy(deep=True)
        update_credential_with_tokens(exchanged, token_response)
        logger.info(f"Successfully exchanged OAuth2 credential via {grant.value}")
        return ExchangeResult(credential=exchanged, was_exchanged=True)

    async def close(self) -> None:
        await self._token_client.close()
