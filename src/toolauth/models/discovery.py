"""Server metadata documents fetched during endpoint auto-discovery.

Protected Resource Metadata (RFC 9728) points at the authorization servers;
Authorization Server Metadata (RFC 8414) and OpenID Connect Discovery
documents share one model since both carry the endpoints we need.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class ProtectedResourceMetadata(BaseModel):
    resource: str
    authorization_servers: list[str] = Field(min_length=1)
    scopes_supported: list[str] | None = None
    bearer_methods_supported: list[str] | None = None


class AuthorizationServerMetadata(BaseModel):
    """Issuer metadata. Only the endpoints used to fill in a scheme are required."""

    issuer: str
    authorization_endpoint: str
    token_endpoint: str

    # OpenID Connect Discovery
    userinfo_endpoint: str | None = None
    jwks_uri: str | None = None

    revocation_endpoint: str | None = None
    scopes_supported: list[str] | None = None
    grant_types_supported: list[str] | None = None
    token_endpoint_auth_methods_supported: list[str] | None = None
