"""Credential persistence.

A credential service stores the exchanged credential of an ``AuthConfig``
so later tool calls can reuse it without a new consent round trip.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from toolauth.models.config import AuthConfig
from toolauth.models.credentials import AuthCredential, credential_from_state

if TYPE_CHECKING:
    from toolauth.context import CredentialContext

logger = logging.getLogger(__name__)


class BaseCredentialService(ABC):
    @abstractmethod
    async def load_credential(
        self, auth_config: AuthConfig, context: CredentialContext
    ) -> AuthCredential | None:
        """Load the stored credential for the config's credential key."""

    @abstractmethod
    async def save_credential(
        self, auth_config: AuthConfig, context: CredentialContext
    ) -> None:
        """Store the config's exchanged credential.

        Configs without an exchanged credential are ignored.
        """


class InMemoryCredentialService(BaseCredentialService):
    """Keeps credentials in process memory, keyed by app, user and credential key.

    Credentials outlive sessions but not the process.
    """

    def __init__(self) -> None:
        self._credentials: dict[str, dict[str, dict[str, AuthCredential]]] = {}

    async def load_credential(
        self, auth_config: AuthConfig, context: CredentialContext
    ) -> AuthCredential | None:
        bucket = self._credentials.get(context.app_name, {}).get(context.user_id, {})
        return bucket.get(auth_config.credential_key)

    async def save_credential(
        self, auth_config: AuthConfig, context: CredentialContext
    ) -> None:
        if auth_config.exchanged_auth_credential is None:
            return
        bucket = self._credentials.setdefault(context.app_name, {}).setdefault(
            context.user_id, {}
        )
        bucket[auth_config.credential_key] = auth_config.exchanged_auth_credential
        logger.debug(
            f"Saved credential {auth_config.credential_key} for "
            f"app={context.app_name} user={context.user_id}"
        )


class SessionStateCredentialService(BaseCredentialService):
    """Stores credentials in session state under the config's credential key.

    Session state may be persisted in plain form; only use this where that
    is acceptable for the credentials involved.
    """

    async def load_credential(
        self, auth_config: AuthConfig, context: CredentialContext
    ) -> AuthCredential | None:
        return credential_from_state(context.state.get(auth_config.credential_key))

    async def save_credential(
        self, auth_config: AuthConfig, context: CredentialContext
    ) -> None:
        if auth_config.exchanged_auth_credential is not None:
            context.state.set(
                auth_config.credential_key, auth_config.exchanged_auth_credential
            )
