"""
Error taxonomy for the authentication core.

Every failure path raises one of these. ``reason`` is for logs only; the API
layer maps each kind to a fixed public response so callers cannot tell, for
example, a wrong password from a wrong TOTP code.
"""


class AuthError(Exception):
    """Base class. ``reason`` is internal and never sent to clients."""

    def __init__(self, reason: str = ""):
        super().__init__(reason)
        self.reason = reason


class AuthenticationFailure(AuthError):
    """Bad password, or missing/invalid second factor."""


class SessionInvalid(AuthError):
    """Missing, expired or revoked session token."""


class ValidationFailure(AuthError):
    """Malformed code, or stale/foreign secret on enable."""


class StoreConflict(AuthError):
    """Concurrent write to the same security record."""
