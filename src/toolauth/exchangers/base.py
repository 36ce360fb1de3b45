from __future__ import annotations

from abc import ABC, abstractmethod

from toolauth.models.credentials import AuthCredential, ExchangeResult
from toolauth.models.schemes import AuthScheme


class BaseCredentialExchanger(ABC):
    """Turns a raw credential into one that can be used directly.

    Exchange is one-shot and fatal on failure: implementations raise
    ``CredentialExchangeError`` instead of returning a degraded credential.
    """

    @abstractmethod
    async def exchange(
        self, credential: AuthCredential, scheme: AuthScheme | None = None
    ) -> ExchangeResult:
        """Exchange the credential if needed.

        Args:
            credential: Credential to exchange
            scheme: Scheme the credential is for; some exchangers ignore it

        Returns:
            ExchangeResult with ``was_exchanged=False`` when the credential
            was already usable and is passed through unchanged

        Raises:
            CredentialExchangeError: If the credential is malformed or the
                upstream exchange fails
        """
