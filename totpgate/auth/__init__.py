"""
Authentication core for totpgate.

This package provides:
- TOTP engine (secret generation, code derivation and validation)
- Per-user second-factor state
- The two-factor login / enrolment service
"""
from .errors import (
    AuthError,
    AuthenticationFailure,
    SessionInvalid,
    StoreConflict,
    ValidationFailure,
)
from .interfaces import CredentialVerifier, SecretStore, SessionManager
from .service import LoginResult, TwoFactorAuthService
from .state import EnabledTOTP, NoTOTP, PendingTOTP, UserSecurityRecord
from .totp import (
    TOTPProvisioning,
    current_code,
    generate_secret,
    provisioning_uri,
    validate_code,
)

__all__ = [
    "AuthError",
    "AuthenticationFailure",
    "SessionInvalid",
    "StoreConflict",
    "ValidationFailure",
    "CredentialVerifier",
    "SecretStore",
    "SessionManager",
    "LoginResult",
    "TwoFactorAuthService",
    "EnabledTOTP",
    "NoTOTP",
    "PendingTOTP",
    "UserSecurityRecord",
    "TOTPProvisioning",
    "current_code",
    "generate_secret",
    "provisioning_uri",
    "validate_code",
]
