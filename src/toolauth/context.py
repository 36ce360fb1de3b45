from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from toolauth.handler import AuthHandler
from toolauth.models.config import AuthConfig
from toolauth.models.credentials import AuthCredential
from toolauth.state import State, StateStore

if TYPE_CHECKING:
    from toolauth.credential_service import BaseCredentialService


@dataclass
class CredentialContext:
    """What a tool call exposes to the credential machinery.

    Holds the session state, the identity credentials are stored under and
    the credential service (if any) that persists them across sessions.
    """

    state: StateStore = field(default_factory=State)
    app_name: str = ""
    user_id: str = ""
    credential_service: BaseCredentialService | None = None
    requested_auth_configs: dict[str, AuthConfig] = field(default_factory=dict)
    """
    Auth configs awaiting user consent, keyed by credential key.
    """

    def request_credential(self, auth_config: AuthConfig) -> None:
        """Ask the caller to run the consent flow for ``auth_config``."""
        self.requested_auth_configs[auth_config.credential_key] = auth_config

    def get_auth_response(self, auth_config: AuthConfig) -> AuthCredential | None:
        """Return the auth response stored for ``auth_config``, if any."""
        return AuthHandler(auth_config).get_auth_response(self.state)
