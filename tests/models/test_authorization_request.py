"""Tests for authorization URL construction."""

from urllib.parse import parse_qs, urlparse

import pytest

from toolauth.models.flow import AuthorizationRequest


class TestBuildAuthorizationUrl:
    def test_includes_all_parameters(self):
        # Arrange
        request = AuthorizationRequest(
            authorization_endpoint="https://auth.example.com/authorize",
            client_id="id1",
            redirect_uri="https://cb",
            scopes=("read", "write"),
            state="a" * 64,
            audience="https://api.example.com",
        )

        # Act
        url = request.build_authorization_url()

        # Assert
        assert url.startswith(
            "https://auth.example.com/authorize?response_type=code&client_id=id1"
        )
        params = parse_qs(urlparse(url).query)
        assert params == {
            "response_type": ["code"],
            "client_id": ["id1"],
            "redirect_uri": ["https://cb"],
            "scope": ["read write"],
            "state": ["a" * 64],
            "access_type": ["offline"],
            "prompt": ["consent"],
            "audience": ["https://api.example.com"],
        }

    def test_audience_omitted_when_unset(self):
        request = AuthorizationRequest(
            authorization_endpoint="https://auth.example.com/authorize",
            client_id="id1",
            redirect_uri="https://cb",
            scopes=(),
            state="s",
        )

        params = parse_qs(urlparse(request.build_authorization_url()).query)

        assert "audience" not in params

    def test_keeps_existing_endpoint_query(self):
        request = AuthorizationRequest(
            authorization_endpoint="https://auth.example.com/authorize?tenant=acme&state=old",
            client_id="id1",
            redirect_uri="https://cb",
            scopes=("read",),
            state="new",
        )

        params = parse_qs(urlparse(request.build_authorization_url()).query)

        assert params["tenant"] == ["acme"]
        assert params["state"] == ["new"]

    def test_relative_endpoint_is_rejected(self):
        request = AuthorizationRequest(
            authorization_endpoint="/authorize",
            client_id="id1",
            redirect_uri="https://cb",
            scopes=(),
            state="s",
        )

        with pytest.raises(ValueError):
            request.build_authorization_url()
