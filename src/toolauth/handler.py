"""Authorization flow orchestration for a single auth config.

The handler drives one credential slot through the OAuth2 authorization
flow: it builds the authorization request the user is sent to, records the
user's redirect response in session state and exchanges it for tokens.
"""

from __future__ import annotations

import logging

from toolauth.exchangers.base import BaseCredentialExchanger
from toolauth.exchangers.oauth2 import OAuth2CredentialExchanger
from toolauth.models.config import AuthConfig
from toolauth.models.credentials import AuthCredential, credential_from_state
from toolauth.models.errors import AuthConfigurationError
from toolauth.models.flow import AuthorizationRequest
from toolauth.models.schemes import authorization_endpoint, uses_oauth_flow
from toolauth.services.security import SecureRandom, SystemRandom, generate_state
from toolauth.state import StateNamespace, StateStore

logger = logging.getLogger(__name__)


class AuthHandler:
    """Runs the authorization flow for one ``AuthConfig``.

    Auth responses are kept in the ``TEMP`` state namespace under the
    config's credential key.
    """

    def __init__(
        self,
        auth_config: AuthConfig,
        secure_random: SecureRandom | None = None,
        exchanger: BaseCredentialExchanger | None = None,
    ):
        """Initialize the handler.

        Args:
            auth_config: Auth config this handler is bound to
            secure_random: Source of the anti-CSRF state; defaults to the
                operating system CSPRNG
            exchanger: Exchanger for auth responses; an OAuth2 exchanger is
                created on first use when omitted
        """
        self.auth_config = auth_config
        self._secure_random = secure_random or SystemRandom()
        self._exchanger = exchanger

    def get_auth_response(self, state: StateStore) -> AuthCredential | None:
        return credential_from_state(
            state.get(self.auth_config.credential_key, namespace=StateNamespace.TEMP)
        )

    async def parse_and_store_auth_response(self, state: StateStore) -> None:
        """Store the auth response, then replace it with exchanged tokens.

        The raw response is written first so it stays visible in state even
        when the exchange that follows fails.

        Raises:
            CredentialExchangeError: If exchanging the response fails
        """
        credential_key = self.auth_config.credential_key
        state.set(
            credential_key,
            self.auth_config.exchanged_auth_credential,
            namespace=StateNamespace.TEMP,
        )

        if not uses_oauth_flow(self.auth_config.auth_scheme):
            return

        exchanged_credential = await self.exchange_auth_token()
        if exchanged_credential is not None:
            state.set(credential_key, exchanged_credential, namespace=StateNamespace.TEMP)

    async def exchange_auth_token(self) -> AuthCredential | None:
        """Exchange the config's auth response for tokens.

        Returns:
            The exchanged credential, or None when there is no auth response
            yet

        Raises:
            CredentialExchangeError: If the exchange fails
        """
        credential = self.auth_config.exchanged_auth_credential
        if credential is None:
            return None

        if self._exchanger is None:
            self._exchanger = OAuth2CredentialExchanger()
        result = await self._exchanger.exchange(credential, self.auth_config.auth_scheme)
        return result.credential

    def generate_auth_request(self) -> AuthConfig:
        """Prepare the auth config the user's consent step starts from.

        Returns the bound config itself when there is nothing to do (not an
        OAuth2/OIDC scheme, or an authorization URI already exists), otherwise
        a copy whose exchanged credential carries the authorization URI and
        state.

        Raises:
            AuthConfigurationError: If the raw credential lacks its oauth2
                payload or client id/secret, or the scheme has no usable
                authorization endpoint
        """
        auth_config = self.auth_config
        scheme = auth_config.auth_scheme
        if not uses_oauth_flow(scheme):
            return auth_config

        exchanged = auth_config.exchanged_auth_credential
        if exchanged is not None and exchanged.oauth2 and exchanged.oauth2.auth_uri:
            return auth_config

        raw = auth_config.raw_auth_credential
        if raw is None:
            raise AuthConfigurationError(
                f"Auth scheme {scheme.type} requires a raw auth credential"
            )
        if raw.oauth2 is None:
            raise AuthConfigurationError(
                f"Auth scheme {scheme.type} requires oauth2 in the raw auth credential"
            )
        if not raw.oauth2.client_id or not raw.oauth2.client_secret:
            raise AuthConfigurationError(
                f"Auth scheme {scheme.type} requires both clientId and clientSecret "
                f"in the raw auth credential"
            )

        # Caller supplied its own authorization URI
        if raw.oauth2.auth_uri:
            return auth_config.model_copy(update={"exchanged_auth_credential": raw})

        if authorization_endpoint(scheme) is None:
            raise AuthConfigurationError(
                f"Authorization endpoint not configured in {scheme.type} auth scheme"
            )

        return auth_config.model_copy(
            update={"exchanged_auth_credential": self.generate_auth_uri()}
        )

    def generate_auth_uri(self) -> AuthCredential | None:
        """Build a credential carrying a fresh authorization URI and state.

        Never raises. On any failure the raw credential is returned as is;
        a result without ``auth_uri`` means no request could be generated.
        """
        raw = self.auth_config.raw_auth_credential
        if raw is None or raw.oauth2 is None:
            return raw

        try:
            endpoint = authorization_endpoint(self.auth_config.auth_scheme)
            if endpoint is None:
                raise AuthConfigurationError(
                    "Authorization endpoint not configured in auth scheme"
                )
            url, scopes = endpoint

            state = generate_state(self._secure_random)
            request = AuthorizationRequest(
                authorization_endpoint=url,
                client_id=raw.oauth2.client_id or "",
                redirect_uri=raw.oauth2.redirect_uri or "",
                scopes=tuple(scopes),
                state=state,
                audience=raw.oauth2.audience,
            )
            auth_uri = request.build_authorization_url()
        except Exception as e:
            logger.error(f"Failed to generate authorization URI: {e}")
            return raw

        oauth2 = raw.oauth2.model_copy(update={"auth_uri": auth_uri, "state": state})
        exchanged = raw.model_copy(update={"oauth2": oauth2}, deep=True)
        logger.debug(f"Generated authorization URI for {self.auth_config.credential_key}")
        return exchanged
