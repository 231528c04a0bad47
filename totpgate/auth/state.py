"""
Per-user second-factor state.

The TOTP lifecycle is an explicit tagged variant rather than a bag of flags:

    NoTOTP                      no secret, single-factor login
    PendingTOTP(pending)        secret generated, not yet proven
    EnabledTOTP(secret[, pending])
                                secret proven and enforced on login;
                                a re-generated secret waits in ``pending``
                                until it is confirmed

Illegal combinations (enabled without a secret) cannot be constructed.
"""
from dataclasses import dataclass, field, replace
from typing import Optional, Union


def _require_secret(value: Optional[str], name: str) -> None:
    if not value:
        raise ValueError(f"{name} must be a non-empty secret")


@dataclass(frozen=True)
class NoTOTP:
    name = "none"


@dataclass(frozen=True)
class PendingTOTP:
    pending_secret: str
    name = "pending"

    def __post_init__(self):
        _require_secret(self.pending_secret, "pending_secret")


@dataclass(frozen=True)
class EnabledTOTP:
    secret: str
    pending_secret: Optional[str] = None
    name = "enabled"

    def __post_init__(self):
        _require_secret(self.secret, "secret")
        if self.pending_secret is not None:
            _require_secret(self.pending_secret, "pending_secret")


TOTPState = Union[NoTOTP, PendingTOTP, EnabledTOTP]


@dataclass(frozen=True)
class UserSecurityRecord:
    """
    Second-factor record for one user, keyed by username.

    ``version`` increases by one on every successful write and is what the
    secret stores compare-and-set against. The password hash is not part of
    the record; it stays with the credential store.
    """
    username: str
    totp: TOTPState = field(default_factory=NoTOTP)
    version: int = 0

    @property
    def totp_enabled(self) -> bool:
        return isinstance(self.totp, EnabledTOTP)

    @property
    def totp_secret(self) -> Optional[str]:
        """The enforced secret, only present when enabled."""
        if isinstance(self.totp, EnabledTOTP):
            return self.totp.secret
        return None

    @property
    def totp_pending_secret(self) -> Optional[str]:
        if isinstance(self.totp, (PendingTOTP, EnabledTOTP)):
            return self.totp.pending_secret
        return None

    @property
    def state_name(self) -> str:
        return self.totp.name

    def with_pending(self, secret: str) -> "UserSecurityRecord":
        """New pending secret; an enabled secret stays live."""
        if isinstance(self.totp, EnabledTOTP):
            return replace(self, totp=EnabledTOTP(self.totp.secret, pending_secret=secret))
        return replace(self, totp=PendingTOTP(secret))

    def with_pending_confirmed(self) -> "UserSecurityRecord":
        """Promote the pending secret to the enforced one."""
        pending = self.totp_pending_secret
        if pending is None:
            raise ValueError("no pending secret to confirm")
        return replace(self, totp=EnabledTOTP(pending))

    def with_totp_cleared(self) -> "UserSecurityRecord":
        return replace(self, totp=NoTOTP())


def state_from_columns(
    secret: Optional[str],
    pending_secret: Optional[str],
    enabled: bool,
) -> TOTPState:
    """
    Rebuild the tagged state from flat storage columns.

    A row flagged enabled without a secret is corrupt and raises ValueError
    rather than silently degrading to single-factor login.
    """
    if enabled:
        return EnabledTOTP(secret, pending_secret=pending_secret or None)
    if pending_secret:
        return PendingTOTP(pending_secret)
    return NoTOTP()


def state_to_columns(state: TOTPState) -> dict:
    """Flatten a tagged state into ``totp_secret/totp_pending_secret/totp_enabled``."""
    if isinstance(state, EnabledTOTP):
        return {
            "totp_secret": state.secret,
            "totp_pending_secret": state.pending_secret,
            "totp_enabled": True,
        }
    if isinstance(state, PendingTOTP):
        return {
            "totp_secret": None,
            "totp_pending_secret": state.pending_secret,
            "totp_enabled": False,
        }
    return {
        "totp_secret": None,
        "totp_pending_secret": None,
        "totp_enabled": False,
    }
