"""Tests for credential resolution through CredentialManager."""

import asyncio
import time
from unittest.mock import AsyncMock

import pytest

from toolauth.context import CredentialContext
from toolauth.credential_service import SessionStateCredentialService
from toolauth.exchangers.registry import CredentialExchangerRegistry
from toolauth.manager import CredentialManager
from toolauth.models.config import AuthConfig
from toolauth.models.credentials import (
    ApiKeyAuth,
    AuthCredential,
    AuthCredentialType,
    ExchangeResult,
    OAuth2Auth,
    ServiceAccount,
)
from toolauth.models.discovery import AuthorizationServerMetadata
from toolauth.models.errors import AuthConfigurationError, CredentialExchangeError
from toolauth.models.schemes import ApiKeyScheme
from toolauth.models.tokens import TokenResponse
from toolauth.refreshers.oauth2 import OAuth2CredentialRefresher
from toolauth.refreshers.registry import CredentialRefresherRegistry
from toolauth.state import StateNamespace

AUTH_CODE_SCHEME = {
    "type": "oauth2",
    "flows": {
        "authorizationCode": {
            "authorizationUrl": "https://auth.example.com/authorize",
            "tokenUrl": "https://auth.example.com/token",
            "scopes": {"read": ""},
        }
    },
}

CLIENT_CREDENTIALS_SCHEME = {
    "type": "oauth2",
    "flows": {
        "clientCredentials": {
            "tokenUrl": "https://auth.example.com/token",
            "scopes": {"read": ""},
        }
    },
}


def oauth2_credential(**fields) -> AuthCredential:
    oauth2 = {"client_id": "id1", "client_secret": "secret1", **fields}
    return AuthCredential(auth_type=AuthCredentialType.OAUTH2, oauth2=OAuth2Auth(**oauth2))


def make_config(scheme=AUTH_CODE_SCHEME, raw=None) -> AuthConfig:
    return AuthConfig(
        auth_scheme=scheme,
        raw_auth_credential=raw if raw is not None else oauth2_credential(),
        credential_key="slot-1",
    )


class TestValidation:
    async def test_oauth_scheme_without_raw_credential_raises(self):
        config = AuthConfig(auth_scheme=AUTH_CODE_SCHEME, credential_key="slot-1")
        manager = CredentialManager(config)

        with pytest.raises(AuthConfigurationError, match="raw_auth_credential"):
            await manager.get_auth_credential(CredentialContext())

    async def test_oauth2_credential_without_payload_raises(self):
        config = make_config(raw=AuthCredential(auth_type=AuthCredentialType.OAUTH2))
        manager = CredentialManager(config)

        with pytest.raises(AuthConfigurationError, match="oauth2 field"):
            await manager.get_auth_credential(CredentialContext())

    async def test_missing_urls_without_issuer_raises(self):
        scheme = {"type": "oauth2", "flows": {"authorizationCode": {"scopes": {}}}}
        manager = CredentialManager(make_config(scheme=scheme))

        with pytest.raises(AuthConfigurationError, match="auto-discovery"):
            await manager.get_auth_credential(CredentialContext())


class TestDiscovery:
    def setup_method(self):
        self.scheme = {
            "type": "oauth2",
            "issuerUrl": "https://auth.example.com",
            "flows": {"authorizationCode": {"scopes": {"read": ""}}},
        }
        self.discovery = AsyncMock()

    async def test_populates_missing_urls_from_issuer(self):
        # Arrange
        self.discovery.discover_auth_server_metadata.return_value = (
            AuthorizationServerMetadata(
                issuer="https://auth.example.com",
                authorization_endpoint="https://auth.example.com/authorize",
                token_endpoint="https://auth.example.com/token",
            )
        )
        config = make_config(scheme=self.scheme)
        manager = CredentialManager(config, discovery=self.discovery)

        # Act
        credential = await manager.get_auth_credential(CredentialContext())

        # Assert
        assert credential is None
        flow = config.auth_scheme.flows.authorization_code
        assert flow.authorization_url == "https://auth.example.com/authorize"
        assert flow.token_url == "https://auth.example.com/token"
        self.discovery.discover_auth_server_metadata.assert_awaited_once_with(
            "https://auth.example.com"
        )

    async def test_failed_discovery_raises(self):
        self.discovery.discover_auth_server_metadata.return_value = None
        manager = CredentialManager(
            make_config(scheme=self.scheme), discovery=self.discovery
        )

        with pytest.raises(AuthConfigurationError, match="auto-discovery"):
            await manager.get_auth_credential(CredentialContext())


class TestResolution:
    def setup_method(self):
        self.exchanger = AsyncMock()
        self.exchanger.exchange.side_effect = lambda credential, scheme: ExchangeResult(
            credential=credential, was_exchanged=False
        )
        self.refresher = AsyncMock()
        self.refresher.is_refresh_needed.return_value = False
        self.exchangers = CredentialExchangerRegistry()
        self.exchangers.register(AuthCredentialType.OAUTH2, self.exchanger)
        self.refreshers = CredentialRefresherRegistry()
        self.refreshers.register(AuthCredentialType.OAUTH2, self.refresher)
        self.credential_service = AsyncMock()
        self.credential_service.load_credential.return_value = None
        self.context = CredentialContext(credential_service=self.credential_service)

    def make_manager(self, config: AuthConfig) -> CredentialManager:
        return CredentialManager(
            config,
            exchanger_registry=self.exchangers,
            refresher_registry=self.refreshers,
        )

    async def test_simple_credential_is_returned_directly(self):
        raw = AuthCredential(
            auth_type=AuthCredentialType.API_KEY, api_key=ApiKeyAuth(api_key="k")
        )
        config = make_config(
            scheme=ApiKeyScheme(name="X-Key", location="header"), raw=raw
        )

        credential = await self.make_manager(config).get_auth_credential(self.context)

        assert credential is raw
        self.credential_service.load_credential.assert_not_awaited()

    async def test_returns_none_when_consent_needed(self):
        # Arrange
        config = make_config()
        manager = self.make_manager(config)

        # Act
        credential = await manager.get_auth_credential(self.context)
        await manager.request_credential(self.context)

        # Assert
        assert credential is None
        assert self.context.requested_auth_configs == {"slot-1": config}
        self.exchanger.exchange.assert_not_awaited()

    async def test_stored_credential_is_returned_without_writes(self):
        stored = oauth2_credential(access_token="stored-token")
        self.credential_service.load_credential.return_value = stored

        credential = await self.make_manager(make_config()).get_auth_credential(
            self.context
        )

        assert credential is stored
        self.credential_service.save_credential.assert_not_awaited()

    async def test_auth_response_is_used_and_saved(self):
        # Arrange
        config = make_config()
        response = oauth2_credential(access_token="from-consent")
        self.context.state.set("slot-1", response, namespace=StateNamespace.TEMP)

        # Act
        credential = await self.make_manager(config).get_auth_credential(self.context)

        # Assert
        assert credential is response
        assert config.exchanged_auth_credential is response
        self.credential_service.save_credential.assert_awaited_once_with(
            config, self.context
        )

    async def test_auth_response_in_wire_form_is_accepted(self):
        # Arrange
        config = make_config()
        self.context.state.set(
            "slot-1",
            {"authType": "oauth2", "oauth2": {"clientId": "id1", "accessToken": "tok"}},
            namespace=StateNamespace.TEMP,
        )

        # Act
        credential = await self.make_manager(config).get_auth_credential(self.context)

        # Assert
        assert isinstance(credential, AuthCredential)
        assert credential.oauth2.access_token == "tok"
        self.credential_service.save_credential.assert_awaited_once()

    async def test_client_credentials_flow_exchanges_raw_credential(self):
        # Arrange
        exchanged = oauth2_credential(access_token="cc-token")
        self.exchanger.exchange.side_effect = None
        self.exchanger.exchange.return_value = ExchangeResult(
            credential=exchanged, was_exchanged=True
        )
        config = make_config(scheme=CLIENT_CREDENTIALS_SCHEME)

        # Act
        credential = await self.make_manager(config).get_auth_credential(self.context)

        # Assert
        assert credential is exchanged
        assert self.exchanger.exchange.call_args[0][0] is config.raw_auth_credential
        self.credential_service.save_credential.assert_awaited_once()
        self.refresher.is_refresh_needed.assert_not_awaited()

    async def test_service_account_uses_registered_exchanger(self):
        service_account_exchanger = AsyncMock()
        exchanged = oauth2_credential(access_token="sa-token")
        service_account_exchanger.exchange.return_value = ExchangeResult(
            credential=exchanged, was_exchanged=True
        )
        raw = AuthCredential(
            auth_type=AuthCredentialType.SERVICE_ACCOUNT,
            service_account=ServiceAccount(use_default_credential=True),
        )
        manager = self.make_manager(make_config(scheme=CLIENT_CREDENTIALS_SCHEME, raw=raw))
        manager.register_credential_exchanger(
            AuthCredentialType.SERVICE_ACCOUNT, service_account_exchanger
        )

        credential = await manager.get_auth_credential(self.context)

        assert credential is exchanged
        service_account_exchanger.exchange.assert_awaited_once()

    async def test_exchange_error_propagates(self):
        self.exchanger.exchange.side_effect = CredentialExchangeError("boom")
        config = make_config(scheme=CLIENT_CREDENTIALS_SCHEME)

        with pytest.raises(CredentialExchangeError):
            await self.make_manager(config).get_auth_credential(self.context)

    async def test_expired_credential_is_refreshed_and_saved(self):
        # Arrange
        stored = oauth2_credential(access_token="old", refresh_token="r")
        refreshed = oauth2_credential(access_token="new", refresh_token="r")
        self.credential_service.load_credential.return_value = stored
        self.refresher.is_refresh_needed.side_effect = (
            lambda credential, scheme: credential is stored
        )
        self.refresher.refresh.return_value = refreshed
        config = make_config()

        # Act
        credential = await self.make_manager(config).get_auth_credential(self.context)

        # Assert
        assert credential is refreshed
        assert config.exchanged_auth_credential is refreshed
        self.refresher.refresh.assert_awaited_once()
        self.credential_service.save_credential.assert_awaited_once()

    async def test_registered_refresher_replaces_default(self):
        stored = oauth2_credential(access_token="old")
        refreshed = oauth2_credential(access_token="new")
        self.credential_service.load_credential.return_value = stored
        replacement = AsyncMock()
        replacement.is_refresh_needed.side_effect = (
            lambda credential, scheme: credential is stored
        )
        replacement.refresh.return_value = refreshed
        manager = self.make_manager(make_config())
        manager.register_credential_refresher(AuthCredentialType.OAUTH2, replacement)

        credential = await manager.get_auth_credential(self.context)

        assert credential is refreshed
        self.refresher.refresh.assert_not_awaited()

    async def test_failed_refresh_returns_stale_credential_unsaved(self):
        stored = oauth2_credential(access_token="old")
        self.credential_service.load_credential.return_value = stored
        self.refresher.is_refresh_needed.return_value = True
        self.refresher.refresh.return_value = stored

        credential = await self.make_manager(make_config()).get_auth_credential(
            self.context
        )

        assert credential is stored
        self.credential_service.save_credential.assert_not_awaited()


class TestConcurrentRefresh:
    async def test_concurrent_calls_issue_one_refresh_request(self):
        # Arrange
        stored = oauth2_credential(
            access_token="old",
            refresh_token="refresh-abc",
            expires_at=int(time.time()) - 10,
        )
        context = CredentialContext(credential_service=SessionStateCredentialService())
        context.state.set("slot-1", stored)

        refresher = OAuth2CredentialRefresher()
        refresher._token_client = AsyncMock()

        async def slow_refresh(request):
            await asyncio.sleep(0)
            return TokenResponse(access_token="new", expires_in=3600)

        refresher._token_client.refresh_access_token.side_effect = slow_refresh
        refreshers = CredentialRefresherRegistry()
        refreshers.register(AuthCredentialType.OAUTH2, refresher)
        manager = CredentialManager(make_config(), refresher_registry=refreshers)

        # Act
        first, second = await asyncio.gather(
            manager.get_auth_credential(context),
            manager.get_auth_credential(context),
        )

        # Assert
        refresher._token_client.refresh_access_token.assert_awaited_once()
        assert first.oauth2.access_token == "new"
        assert second.oauth2.access_token == "new"


class TestClose:
    async def test_closes_default_http_clients(self):
        # Arrange
        manager = CredentialManager(make_config())
        exchanger = manager._exchanger_registry.get_exchanger(AuthCredentialType.OAUTH2)
        refresher = manager._refresher_registry.get_refresher(AuthCredentialType.OAUTH2)

        # Act
        await manager.close()

        # Assert
        assert exchanger._token_client._http_client.is_closed
        assert refresher._token_client._http_client.is_closed

    async def test_leaves_injected_components_open(self):
        refresher = AsyncMock()
        refreshers = CredentialRefresherRegistry()
        refreshers.register(AuthCredentialType.OAUTH2, refresher)
        discovery = AsyncMock()
        manager = CredentialManager(
            make_config(),
            exchanger_registry=CredentialExchangerRegistry(),
            refresher_registry=refreshers,
            discovery=discovery,
        )

        await manager.close()

        refresher.close.assert_not_awaited()
        discovery.close.assert_not_awaited()
