"""Credential resolution for tool calls.

``CredentialManager`` hides the whole credential lifecycle behind one call:
load what is stored, pick up a finished consent flow, exchange raw
credentials, refresh expired tokens and persist whatever changed.
"""

from __future__ import annotations

import logging

from toolauth.config import AuthClientConfig
from toolauth.context import CredentialContext
from toolauth.exchangers.base import BaseCredentialExchanger
from toolauth.exchangers.oauth2 import OAuth2CredentialExchanger
from toolauth.exchangers.registry import CredentialExchangerRegistry
from toolauth.exchangers.service_account import ServiceAccountCredentialExchanger
from toolauth.models.config import AuthConfig
from toolauth.models.credentials import (
    AuthCredential,
    AuthCredentialType,
    is_simple_credential,
)
from toolauth.models.errors import AuthConfigurationError
from toolauth.models.schemes import (
    OAuth2Scheme,
    OAuthGrantType,
    grant_type,
    uses_oauth_flow,
)
from toolauth.refreshers.base import BaseCredentialRefresher
from toolauth.refreshers.oauth2 import OAuth2CredentialRefresher
from toolauth.refreshers.registry import CredentialRefresherRegistry
from toolauth.services.discovery import OAuth2DiscoveryManager

logger = logging.getLogger(__name__)


class CredentialManager:
    """Resolves a ready-to-use credential for one ``AuthConfig``.

    Example:
        manager = CredentialManager(auth_config)
        credential = await manager.get_auth_credential(context)
        if credential is None:
            await manager.request_credential(context)
    """

    def __init__(
        self,
        auth_config: AuthConfig,
        *,
        exchanger_registry: CredentialExchangerRegistry | None = None,
        refresher_registry: CredentialRefresherRegistry | None = None,
        discovery: OAuth2DiscoveryManager | None = None,
        config: AuthClientConfig | None = None,
    ):
        """Initialize the credential manager.

        Args:
            auth_config: Auth config credentials are resolved for
            exchanger_registry: Exchangers to use; defaults to OAuth2/OIDC
                and service account exchangers
            refresher_registry: Refreshers to use; defaults to the OAuth2
                refresher for OAuth2/OIDC credentials
            discovery: Metadata discovery for schemes with an issuer URL
            config: Runtime settings for the default components
        """
        self.auth_config = auth_config
        self.config = config or AuthClientConfig()
        self._discovery = discovery
        # HTTP clients created here rather than injected; closed by close()
        self._owned_clients: list[
            OAuth2CredentialExchanger | OAuth2CredentialRefresher | OAuth2DiscoveryManager
        ] = []

        if exchanger_registry is None:
            exchanger_registry = CredentialExchangerRegistry()
            oauth2_exchanger = OAuth2CredentialExchanger(timeout=self.config.timeout)
            self._owned_clients.append(oauth2_exchanger)
            exchanger_registry.register(AuthCredentialType.OAUTH2, oauth2_exchanger)
            exchanger_registry.register(
                AuthCredentialType.OPEN_ID_CONNECT, oauth2_exchanger
            )
            exchanger_registry.register(
                AuthCredentialType.SERVICE_ACCOUNT,
                ServiceAccountCredentialExchanger(
                    default_token_lifetime=self.config.default_token_lifetime,
                    default_token_uri=self.config.default_token_uri,
                ),
            )
        self._exchanger_registry = exchanger_registry

        if refresher_registry is None:
            refresher_registry = CredentialRefresherRegistry()
            oauth2_refresher = OAuth2CredentialRefresher(timeout=self.config.timeout)
            self._owned_clients.append(oauth2_refresher)
            refresher_registry.register(AuthCredentialType.OAUTH2, oauth2_refresher)
            refresher_registry.register(
                AuthCredentialType.OPEN_ID_CONNECT, oauth2_refresher
            )
        self._refresher_registry = refresher_registry

    def register_credential_exchanger(
        self, credential_type: AuthCredentialType, exchanger: BaseCredentialExchanger
    ) -> None:
        self._exchanger_registry.register(credential_type, exchanger)

    def register_credential_refresher(
        self, credential_type: AuthCredentialType, refresher: BaseCredentialRefresher
    ) -> None:
        self._refresher_registry.register(credential_type, refresher)

    async def close(self) -> None:
        """Close the HTTP clients of the default components.

        Injected registries and discovery belong to the caller and are left
        open.
        """
        for client in self._owned_clients:
            await client.close()
        self._owned_clients.clear()

    async def request_credential(self, context: CredentialContext) -> None:
        """Ask the caller to start the consent flow for this config."""
        context.request_credential(self.auth_config)

    async def get_auth_credential(
        self, context: CredentialContext
    ) -> AuthCredential | None:
        """Load and prepare the credential for a tool call.

        Returns None when the user has not completed consent yet; the caller
        is then responsible for requesting it. Safe to call on every tool
        call: without an exchange or refresh due, nothing is written.

        Raises:
            AuthConfigurationError: If the auth config is unusable
            CredentialExchangeError: If exchanging the credential fails
        """
        await self._validate_credential()

        raw = self.auth_config.raw_auth_credential
        if raw is not None and is_simple_credential(raw):
            return raw

        credential = await self._load_existing_credential(context)

        was_from_auth_response = False
        if credential is None:
            credential = context.get_auth_response(self.auth_config)
            was_from_auth_response = credential is not None

        if credential is None:
            if not self._is_client_credentials_flow():
                logger.debug(
                    f"No credential for {self.auth_config.credential_key}, "
                    f"user consent needed"
                )
                return None
            credential = raw
            if credential is None:
                return None

        was_exchanged = False
        exchanger = self._exchanger_registry.get_exchanger(credential.auth_type)
        if exchanger is not None:
            result = await exchanger.exchange(credential, self.auth_config.auth_scheme)
            credential = result.credential
            was_exchanged = result.was_exchanged

        was_saved = False
        if not was_exchanged:
            credential, was_saved = await self._refresh_credential(
                context, credential
            )

        if not was_saved and (was_from_auth_response or was_exchanged):
            await self._save_credential(context, credential)

        return credential

    async def _load_existing_credential(
        self, context: CredentialContext
    ) -> AuthCredential | None:
        if context.credential_service is None:
            return None
        return await context.credential_service.load_credential(
            self.auth_config, context
        )

    async def _refresh_credential(
        self, context: CredentialContext, credential: AuthCredential
    ) -> tuple[AuthCredential, bool]:
        """Refresh and save the credential if it has expired.

        Returns the credential and whether it is already saved.

        Refreshes of one credential key are serialized. After taking the
        lock the stored credential is read again, so a refresh finished by a
        concurrent call is reused instead of repeated.
        """
        refresher = self._refresher_registry.get_refresher(credential.auth_type)
        if refresher is None:
            return credential, False

        scheme = self.auth_config.auth_scheme
        if not await refresher.is_refresh_needed(credential, scheme):
            return credential, False

        async with context.state.lock(self.auth_config.credential_key):
            latest = await self._load_existing_credential(context)
            if latest is not None:
                if not await refresher.is_refresh_needed(latest, scheme):
                    logger.debug(
                        f"Credential {self.auth_config.credential_key} already "
                        f"refreshed by a concurrent call"
                    )
                    return latest, True
                credential = latest

            credential = await refresher.refresh(credential, scheme)
            if await refresher.is_refresh_needed(credential, scheme):
                return credential, False
            await self._save_credential(context, credential)
            return credential, True

    async def _save_credential(
        self, context: CredentialContext, credential: AuthCredential
    ) -> None:
        self.auth_config.exchanged_auth_credential = credential
        if context.credential_service is not None:
            await context.credential_service.save_credential(self.auth_config, context)

    async def _validate_credential(self) -> None:
        scheme = self.auth_config.auth_scheme
        raw = self.auth_config.raw_auth_credential

        if raw is None and uses_oauth_flow(scheme):
            raise AuthConfigurationError(
                f"raw_auth_credential is required for auth scheme type {scheme.type}"
            )
        if (
            raw is not None
            and raw.auth_type
            in (AuthCredentialType.OAUTH2, AuthCredentialType.OPEN_ID_CONNECT)
            and raw.oauth2 is None
        ):
            raise AuthConfigurationError(
                f"oauth2 field is required for credential type {raw.auth_type.value}"
            )

        if self._missing_oauth_info() and not await self._populate_auth_scheme():
            raise AuthConfigurationError(
                "OAuth scheme info is missing, and auto-discovery has failed to "
                "fill it in"
            )

    def _missing_oauth_info(self) -> bool:
        scheme = self.auth_config.auth_scheme
        if not isinstance(scheme, OAuth2Scheme):
            return False
        flows = scheme.flows
        return (
            (flows.implicit is not None and not flows.implicit.authorization_url)
            or (flows.password is not None and not flows.password.token_url)
            or (
                flows.client_credentials is not None
                and not flows.client_credentials.token_url
            )
            or (
                flows.authorization_code is not None
                and not (
                    flows.authorization_code.authorization_url
                    and flows.authorization_code.token_url
                )
            )
        )

    async def _populate_auth_scheme(self) -> bool:
        """Fill missing OAuth2 flow URLs from the issuer's metadata.

        Returns:
            True if discovery succeeded and the scheme was updated
        """
        scheme = self.auth_config.auth_scheme
        if not isinstance(scheme, OAuth2Scheme) or not scheme.issuer_url:
            logger.warning("No issuer URL was provided for auto-discovery")
            return False

        if self._discovery is None:
            self._discovery = OAuth2DiscoveryManager(
                timeout=self.config.discovery_timeout
            )
            self._owned_clients.append(self._discovery)
        metadata = await self._discovery.discover_auth_server_metadata(
            scheme.issuer_url
        )
        if metadata is None:
            logger.warning("Auto-discovery has failed to populate OAuth scheme info")
            return False

        flows = scheme.flows
        if flows.implicit and not flows.implicit.authorization_url:
            flows.implicit.authorization_url = metadata.authorization_endpoint
        if flows.password and not flows.password.token_url:
            flows.password.token_url = metadata.token_endpoint
        if flows.client_credentials and not flows.client_credentials.token_url:
            flows.client_credentials.token_url = metadata.token_endpoint
        if flows.authorization_code:
            if not flows.authorization_code.authorization_url:
                flows.authorization_code.authorization_url = (
                    metadata.authorization_endpoint
                )
            if not flows.authorization_code.token_url:
                flows.authorization_code.token_url = metadata.token_endpoint

        logger.info(f"Populated OAuth scheme endpoints from {metadata.issuer}")
        return True

    def _is_client_credentials_flow(self) -> bool:
        return grant_type(self.auth_config.auth_scheme) == OAuthGrantType.CLIENT_CREDENTIALS
