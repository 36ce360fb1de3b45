from __future__ import annotations

from toolauth.exchangers.base import BaseCredentialExchanger
from toolauth.models.credentials import AuthCredentialType


class CredentialExchangerRegistry:
    """Maps credential types to the exchanger that handles them.

    Built and owned by whoever composes the auth stack; there is no shared
    global instance.
    """

    def __init__(self) -> None:
        self._exchangers: dict[AuthCredentialType, BaseCredentialExchanger] = {}

    def register(
        self, credential_type: AuthCredentialType, exchanger: BaseCredentialExchanger
    ) -> None:
        """Register an exchanger, replacing any previous one for the type."""
        self._exchangers[credential_type] = exchanger

    def get_exchanger(
        self, credential_type: AuthCredentialType
    ) -> BaseCredentialExchanger | None:
        return self._exchangers.get(credential_type)
