from __future__ import annotations

from toolauth.models.credentials import AuthCredentialType
from toolauth.refreshers.base import BaseCredentialRefresher


class CredentialRefresherRegistry:
    """Maps credential types to refresher instances."""

    def __init__(self) -> None:
        self._refreshers: dict[AuthCredentialType, BaseCredentialRefresher] = {}

    def register(
        self, credential_type: AuthCredentialType, refresher: BaseCredentialRefresher
    ) -> None:
        self._refreshers[credential_type] = refresher

    def get_refresher(
        self, credential_type: AuthCredentialType
    ) -> BaseCredentialRefresher | None:
        return self._refreshers.get(credential_type)
