"""Service account credential exchanger.

Obtains an OAuth2 access token for a Google service account, either from
Application Default Credentials or by signing a JWT with an explicit key.
"""

from __future__ import annotations

import asyncio
import datetime
import logging

import google.auth
from google.auth.credentials import Credentials
from google.auth.transport.requests import Request
from google.oauth2 import service_account

from toolauth.config import DEFAULT_GOOGLE_TOKEN_URI
from toolauth.exchangers.base import BaseCredentialExchanger
from toolauth.models.credentials import (
    AuthCredential,
    AuthCredentialType,
    ExchangeResult,
    OAuth2Auth,
    ServiceAccount,
    now_epoch,
)
from toolauth.models.errors import CredentialExchangeError
from toolauth.models.schemes import AuthScheme, scheme_scopes

logger = logging.getLogger(__name__)


class ServiceAccountCredentialExchanger(BaseCredentialExchanger):
    """Exchanges a service account credential for a bearer access token.

    Scopes come from the credential itself, falling back to the scheme's
    scopes. The result is always an ``oauth2`` credential.
    """

    def __init__(
        self,
        default_token_lifetime: int = 3600,
        default_token_uri: str = DEFAULT_GOOGLE_TOKEN_URI,
    ):
        """Initialize the exchanger.

        Args:
            default_token_lifetime: Lifetime in seconds to assume when the
                provider does not report the token's expiry
            default_token_uri: Token URI for keys that do not carry one
        """
        self.default_token_lifetime = default_token_lifetime
        self.default_token_uri = default_token_uri

    async def exchange(
        self, credential: AuthCredential, scheme: AuthScheme | None = None
    ) -> ExchangeResult:
        if credential.auth_type != AuthCredentialType.SERVICE_ACCOUNT:
            raise CredentialExchangeError(
                "ServiceAccountCredentialExchanger only supports serviceAccount "
                f"credentials, got {credential.auth_type.value}"
            )
        account = credential.service_account
        if account is None:
            raise CredentialExchangeError(
                "serviceAccount field is required for serviceAccount credentials"
            )

        scopes = account.scopes if account.scopes else scheme_scopes(scheme)

        try:
            google_credentials = self._load_google_credentials(account, scopes)
            # google-auth refreshes synchronously over requests
            await asyncio.to_thread(google_credentials.refresh, Request())
        except CredentialExchangeError:
            raise
        except Exception as e:
            logger.error(f"Failed to exchange service account credential: {e}")
            raise CredentialExchangeError(
                f"Service account exchange failed: {e}"
            ) from e

        if not google_credentials.token:
            raise CredentialExchangeError(
                "Service account exchange returned no access token"
            )

        now = now_epoch()
        expires_in = self._expires_in(google_credentials, now)
        exchanged = AuthCredential(
            auth_type=AuthCredentialType.OAUTH2,
            oauth2=OAuth2Auth(
                access_token=google_credentials.token,
                expires_in=expires_in,
                expires_at=now + expires_in,
                token_type="Bearer",
                scope=" ".join(scopes) if scopes else None,
            ),
        )
        logger.info("Successfully exchanged service account for access token")
        return ExchangeResult(credential=exchanged, was_exchanged=True)

    def _load_google_credentials(
        self, account: ServiceAccount, scopes: list[str] | None
    ) -> Credentials:
        if account.use_default_credential:
            logger.debug("Using application default credentials")
            google_credentials, _ = google.auth.default(
                scopes=scopes, quota_project_id=account.quota_project_id
            )
            return google_credentials

        key = account.service_account_credential
        if key is None:
            raise CredentialExchangeError(
                "Either useDefaultCredential or serviceAccountCredential must be "
                "provided"
            )

        info = key.model_dump(exclude_none=True)
        info.setdefault("token_uri", self.default_token_uri)
        logger.debug(f"Signing service account JWT for {key.client_email}")
        google_credentials = service_account.Credentials.from_service_account_info(
            info, scopes=scopes
        )
        if account.quota_project_id:
            google_credentials = google_credentials.with_quota_project(
                account.quota_project_id
            )
        return google_credentials

    def _expires_in(self, google_credentials: Credentials, now: int) -> int:
        expiry = google_credentials.expiry
        if expiry is None:
            return self.default_token_lifetime
        # google-auth reports expiry as naive UTC
        expires_at = int(expiry.replace(tzinfo=datetime.timezone.utc).timestamp())
        if expires_at <= now:
            return self.default_token_lifetime
        return expires_at - now
