from __future__ import annotations

from abc import ABC, abstractmethod

from toolauth.models.credentials import AuthCredential
from toolauth.models.schemes import AuthScheme


class BaseCredentialRefresher(ABC):
    """Renews an already-exchanged credential whose token has expired.

    Refresh is best effort. Implementations never raise from ``refresh``; on
    any failure they log and hand back the credential they were given.
    """

    @abstractmethod
    async def is_refresh_needed(
        self, credential: AuthCredential, scheme: AuthScheme | None = None
    ) -> bool:
        """Check whether the credential should be refreshed."""

    @abstractmethod
    async def refresh(
        self, credential: AuthCredential, scheme: AuthScheme | None = None
    ) -> AuthCredential:
        """Refresh the credential.

        Returns:
            The refreshed credential, or the original one unchanged if the
            refresh could not be done
        """
