"""Exception hierarchy for credential lifecycle errors.

Separates fatal setup failures (configuration, exchange) from the best-effort
refresh path so callers can decide whether to abort a tool call or carry on
with a stale credential.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base exception for all credential lifecycle errors."""

    pass


class AuthConfigurationError(AuthError):
    """Raised when an auth config cannot produce an authorization request.

    Missing client id/secret, a missing oauth2 payload or an auth scheme with
    no usable flow all end up here. Always fatal for the current call.
    """

    pass


class CredentialExchangeError(AuthError):
    """Raised when a raw credential cannot be exchanged for a usable one."""

    pass


class CredentialRefreshError(AuthError):
    """Raised inside a refresher when a refresh attempt fails.

    Refreshers catch this themselves and hand back the original credential.
    """

    pass


class TokenError(AuthError):
    """Raised when a token endpoint call fails at the transport or parse level."""

    pass


class AuthorizationCallbackError(AuthError):
    """Raised when the authorization redirect response is malformed.

    This indicates the authorization server sent an invalid callback URL,
    not that our callback handling code failed.
    """

    pass


class StateValidationError(AuthorizationCallbackError):
    """Raised when OAuth state parameter validation fails.

    This indicates either a missing state parameter or a state mismatch,
    which could indicate a CSRF attack or authorization server issue.
    """

    pass
