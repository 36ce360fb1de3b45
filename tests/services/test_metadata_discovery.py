"""Tests for authorization server and protected resource metadata discovery."""

import json
from unittest.mock import AsyncMock, MagicMock

import httpx

from toolauth.services.discovery import OAuth2DiscoveryManager


def metadata_response(status_code: int, body: dict | None = None) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.text = json.dumps(body or {})
    return response


def auth_server_metadata(issuer: str) -> dict:
    return {
        "issuer": issuer,
        "authorization_endpoint": f"{issuer}/authorize",
        "token_endpoint": f"{issuer}/token",
        "scopes_supported": ["read"],
    }


class TestDiscoveryUrls:
    def setup_method(self):
        self.discovery = OAuth2DiscoveryManager()

    def test_root_issuer(self):
        urls = self.discovery._build_discovery_urls("https://auth.example.com")

        assert urls == [
            "https://auth.example.com/.well-known/oauth-authorization-server",
            "https://auth.example.com/.well-known/openid-configuration",
        ]

    def test_root_issuer_with_trailing_slash(self):
        urls = self.discovery._build_discovery_urls("https://auth.example.com/")

        assert urls[0] == "https://auth.example.com/.well-known/oauth-authorization-server"
        assert len(urls) == 2

    def test_issuer_with_path(self):
        urls = self.discovery._build_discovery_urls("https://auth.example.com/tenant1/")

        assert urls == [
            "https://auth.example.com/.well-known/oauth-authorization-server/tenant1",
            "https://auth.example.com/.well-known/openid-configuration/tenant1",
            "https://auth.example.com/tenant1/.well-known/openid-configuration",
        ]


class TestDiscoverAuthServerMetadata:
    def setup_method(self):
        self.discovery = OAuth2DiscoveryManager()
        self.discovery._http_client = AsyncMock()

    async def test_returns_first_matching_document(self):
        # Arrange
        self.discovery._http_client.get.return_value = metadata_response(
            200, auth_server_metadata("https://auth.example.com")
        )

        # Act
        metadata = await self.discovery.discover_auth_server_metadata(
            "https://auth.example.com/"
        )

        # Assert
        assert metadata is not None
        assert metadata.token_endpoint == "https://auth.example.com/token"
        assert metadata.authorization_endpoint == "https://auth.example.com/authorize"
        self.discovery._http_client.get.assert_awaited_once()

    async def test_falls_through_failed_endpoints(self):
        self.discovery._http_client.get.side_effect = [
            metadata_response(404),
            httpx.ConnectError("refused"),
            metadata_response(200, auth_server_metadata("https://auth.example.com/t")),
        ]

        metadata = await self.discovery.discover_auth_server_metadata(
            "https://auth.example.com/t"
        )

        assert metadata is not None
        assert self.discovery._http_client.get.await_count == 3
        last_url = self.discovery._http_client.get.call_args_list[-1][0][0]
        assert last_url == "https://auth.example.com/t/.well-known/openid-configuration"

    async def test_rejects_issuer_mismatch(self):
        self.discovery._http_client.get.return_value = metadata_response(
            200, auth_server_metadata("https://evil.example.com")
        )

        metadata = await self.discovery.discover_auth_server_metadata(
            "https://auth.example.com"
        )

        assert metadata is None

    async def test_skips_documents_missing_required_fields(self):
        self.discovery._http_client.get.side_effect = [
            metadata_response(200, {"issuer": "https://auth.example.com"}),
            metadata_response(200, auth_server_metadata("https://auth.example.com")),
        ]

        metadata = await self.discovery.discover_auth_server_metadata(
            "https://auth.example.com"
        )

        assert metadata is not None
        assert metadata.issuer == "https://auth.example.com"

    async def test_invalid_issuer_url_returns_none(self):
        metadata = await self.discovery.discover_auth_server_metadata("not a url")

        assert metadata is None
        self.discovery._http_client.get.assert_not_awaited()


class TestDiscoverResourceMetadata:
    def setup_method(self):
        self.discovery = OAuth2DiscoveryManager()
        self.discovery._http_client = AsyncMock()

    async def test_returns_matching_resource(self):
        # Arrange
        self.discovery._http_client.get.return_value = metadata_response(
            200,
            {
                "resource": "https://api.example.com/v1",
                "authorization_servers": ["https://auth.example.com"],
            },
        )

        # Act
        metadata = await self.discovery.discover_resource_metadata(
            "https://api.example.com/v1/"
        )

        # Assert
        assert metadata is not None
        assert metadata.authorization_servers == ["https://auth.example.com"]
        url = self.discovery._http_client.get.call_args[0][0]
        assert url == "https://api.example.com/.well-known/oauth-protected-resource/v1"

    async def test_rejects_resource_mismatch(self):
        self.discovery._http_client.get.return_value = metadata_response(
            200,
            {
                "resource": "https://other.example.com",
                "authorization_servers": ["https://auth.example.com"],
            },
        )

        metadata = await self.discovery.discover_resource_metadata(
            "https://api.example.com"
        )

        assert metadata is None

    async def test_http_error_returns_none(self):
        self.discovery._http_client.get.return_value = metadata_response(500)

        metadata = await self.discovery.discover_resource_metadata(
            "https://api.example.com"
        )

        assert metadata is None
