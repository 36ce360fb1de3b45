from __future__ import annotations

import hashlib
import json

from pydantic import Field, model_validator

from toolauth.models.base import WireModel
from toolauth.models.credentials import AuthCredential
from toolauth.models.schemes import AuthScheme

CREDENTIAL_KEY_PREFIX = "toolauth_"

# Fields that change as the flow advances and must not move the slot identity.
_VOLATILE_OAUTH2_FIELDS = {
    "accessToken",
    "refreshToken",
    "expiresIn",
    "expiresAt",
    "authUri",
    "state",
    "authCode",
    "authResponseUri",
    "tokenType",
}


class AuthConfig(WireModel):
    """One authorization slot: a scheme, the caller's raw credential and the
    working credential that advances through the auth flow.

    ``raw_auth_credential`` is supplied by the tool and never modified.
    ``exchanged_auth_credential`` is filled in step by step: first with the
    authorization URI and state, then with the user's redirect response, then
    with tokens.
    """

    auth_scheme: AuthScheme = Field(alias="authScheme")
    raw_auth_credential: AuthCredential | None = Field(
        default=None, alias="rawAuthCredential"
    )
    exchanged_auth_credential: AuthCredential | None = Field(
        default=None, alias="exchangedAuthCredential"
    )
    credential_key: str = Field(default="", alias="credentialKey")
    """
    Stable identity of this slot for the session; derived when not given.
    """

    @model_validator(mode="after")
    def derive_credential_key(self) -> AuthConfig:
        if not self.credential_key:
            self.credential_key = derive_credential_key(
                self.auth_scheme, self.raw_auth_credential
            )
        return self


def derive_credential_key(
    auth_scheme: AuthScheme, raw_auth_credential: AuthCredential | None
) -> str:
    """Build a deterministic key from the scheme and the raw credential."""
    scheme_json = json.dumps(auth_scheme.to_wire(), sort_keys=True)
    credential_json = ""
    if raw_auth_credential is not None:
        wire = raw_auth_credential.to_wire()
        oauth2 = wire.get("oauth2")
        if oauth2:
            wire["oauth2"] = {
                k: v for k, v in oauth2.items() if k not in _VOLATILE_OAUTH2_FIELDS
            }
        credential_json = json.dumps(wire, sort_keys=True)

    digest = hashlib.sha256(f"{scheme_json}|{credential_json}".encode()).hexdigest()
    return f"{CREDENTIAL_KEY_PREFIX}{digest[:32]}"
