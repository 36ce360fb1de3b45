"""OAuth 2.0 metadata discovery.

Implements RFC 8414 (Authorization Server Metadata), OpenID Connect
Discovery and RFC 9728 (Protected Resource Metadata) lookups used to fill in
OAuth2 scheme URLs from an issuer.
"""

from __future__ import annotations

import logging
from urllib.parse import urlparse

import httpx
from pydantic import ValidationError

from toolauth.models.discovery import (
    AuthorizationServerMetadata,
    ProtectedResourceMetadata,
)

logger = logging.getLogger(__name__)


class OAuth2DiscoveryManager:
    """Discovers authorization server and protected resource metadata.

    Lookups never raise. A failed lookup, a malformed document or a document
    whose ``issuer``/``resource`` does not match the requested URL (a
    possible mix-up attack) is logged and reported as None.
    """

    def __init__(self, timeout: float = 5.0):
        """Initialize the discovery manager.

        Args:
            timeout: HTTP request timeout in seconds
        """
        self.timeout = timeout
        self._http_client = httpx.AsyncClient(timeout=timeout)

    async def discover_auth_server_metadata(
        self, issuer_url: str
    ) -> AuthorizationServerMetadata | None:
        """Discover authorization server metadata for an issuer.

        Args:
            issuer_url: Issuer identifier of the authorization server

        Returns:
            The first metadata document whose issuer matches, or None
        """
        try:
            discovery_urls = self._build_discovery_urls(issuer_url)
        except ValueError as e:
            logger.warning(f"Failed to parse issuer URL {issuer_url}: {e}")
            return None

        expected_issuer = issuer_url.rstrip("/")
        for url in discovery_urls:
            try:
                logger.debug(f"Trying authorization server metadata discovery: {url}")
                response = await self._http_client.get(
                    url, headers={"Accept": "application/json"}
                )
                if response.status_code != 200:
                    logger.debug(
                        f"Failed to fetch metadata from {url}: {response.status_code}"
                    )
                    continue

                metadata = AuthorizationServerMetadata.model_validate_json(
                    response.text
                )
            except ValidationError as e:
                logger.debug(f"Invalid metadata from {url}: {e}")
                continue
            except httpx.HTTPError as e:
                logger.debug(f"Failed to fetch metadata from {url}: {e}")
                continue

            # Mix-up defence (RFC 8414 Section 3.3)
            if metadata.issuer == expected_issuer:
                logger.debug(
                    f"Successfully discovered authorization server metadata from: "
                    f"{url}"
                )
                return metadata
            logger.warning(
                f"Issuer in metadata {metadata.issuer} does not match issuer URL "
                f"{issuer_url}"
            )

        return None

    async def discover_resource_metadata(
        self, resource_url: str
    ) -> ProtectedResourceMetadata | None:
        """Discover protected resource metadata (RFC 9728).

        Args:
            resource_url: URL of the protected resource

        Returns:
            The metadata document when its resource matches, or None
        """
        try:
            metadata_url = self._build_resource_metadata_url(resource_url)
        except ValueError as e:
            logger.warning(f"Failed to parse resource URL {resource_url}: {e}")
            return None

        try:
            logger.debug(f"Fetching protected resource metadata from: {metadata_url}")
            response = await self._http_client.get(
                metadata_url, headers={"Accept": "application/json"}
            )
            if response.status_code != 200:
                logger.debug(
                    f"Failed to fetch metadata from {metadata_url}: "
                    f"{response.status_code}"
                )
                return None
            metadata = ProtectedResourceMetadata.model_validate_json(response.text)
        except ValidationError as e:
            logger.debug(f"Invalid metadata from {metadata_url}: {e}")
            return None
        except httpx.HTTPError as e:
            logger.debug(f"Failed to fetch metadata from {metadata_url}: {e}")
            return None

        if metadata.resource != resource_url.rstrip("/"):
            logger.warning(
                f"Resource in metadata {metadata.resource} does not match resource "
                f"URL {resource_url}"
            )
            return None
        return metadata

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._http_client.aclose()

    def _build_discovery_urls(self, issuer_url: str) -> list[str]:
        """Build ordered list of discovery URLs to try.

        Issuers with a path try RFC 8414 path insertion first, then OIDC path
        insertion, then OIDC path appending. Issuers without a path try the
        two root documents.

        Raises:
            ValueError: If the issuer is not an absolute URL
        """
        parsed = urlparse(issuer_url)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError("issuer URL must be absolute")
        base_url = f"{parsed.scheme}://{parsed.netloc}"
        path = parsed.path.rstrip("/")

        if path:
            return [
                f"{base_url}/.well-known/oauth-authorization-server{path}",
                f"{base_url}/.well-known/openid-configuration{path}",
                f"{base_url}{path}/.well-known/openid-configuration",
            ]
        return [
            f"{base_url}/.well-known/oauth-authorization-server",
            f"{base_url}/.well-known/openid-configuration",
        ]

    def _build_resource_metadata_url(self, resource_url: str) -> str:
        parsed = urlparse(resource_url)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError("resource URL must be absolute")
        base_url = f"{parsed.scheme}://{parsed.netloc}"
        path = parsed.path.rstrip("/")
        return f"{base_url}/.well-known/oauth-protected-resource{path}"
