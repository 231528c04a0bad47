"""
Two-factor authentication service.

Owns the login decision (password only, or password + TOTP), the
provisioning handshake (generate -> enable) and disabling the second factor.

Login consults its collaborators in a fixed order: credential verifier,
secret store, TOTP engine, session manager. Nothing about the second factor
is looked at before the password has been confirmed.
"""
import hmac
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from . import totp
from .errors import AuthenticationFailure, SessionInvalid, StoreConflict, ValidationFailure
from .interfaces import CredentialVerifier, SecretStore, SessionManager
from .state import UserSecurityRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoginResult:
    """Successful login."""
    token: str
    username: str
    totp_enabled: bool
    expires_in: int


def _normalize_secret(secret: Optional[str]) -> str:
    # Authenticator apps and users often add spaces or lowercase base32
    return "".join((secret or "").split()).upper()


class TwoFactorAuthService:
    """
    Login, logout and TOTP lifecycle for one deployment.

    Holds no mutable state of its own; every mutation is a single
    compare-and-set against the secret store, retried once on conflict.

    Example usage:
        service = TwoFactorAuthService(verifier, store, sessions)
        result = service.login("alice", "password")

        provisioning = service.generate("alice")
        service.enable("alice", provisioning.secret, code_from_app)
    """

    def __init__(
        self,
        verifier: CredentialVerifier,
        store: SecretStore,
        sessions: SessionManager,
        issuer: str = "totpgate",
        clock: Callable[[], float] = time.time,
    ):
        self.verifier = verifier
        self.store = store
        self.sessions = sessions
        self.issuer = issuer
        self.clock = clock

    # ==========================================
    # Login / Logout
    # ==========================================

    def login(self, username: str, password: str, code: Optional[str] = None) -> LoginResult:
        """
        Authenticate with password and, if enabled, a TOTP code.

        A code supplied for an account without an enabled second factor is
        ignored. A pending (unconfirmed) secret is never enforced.

        Raises:
            AuthenticationFailure: For every rejected attempt, whatever the cause.
        """
        if not self.verifier.verify(username, password):
            raise AuthenticationFailure("bad credentials")

        record = self.store.get(username)
        if record is None:
            raise AuthenticationFailure("no security record")

        if record.totp_enabled:
            if not code:
                raise AuthenticationFailure("second factor missing")
            if not totp.validate_code(record.totp_secret, code, self.clock()):
                raise AuthenticationFailure("second factor invalid")

        token = self.sessions.create(username)
        logger.info(f"User logged in: {username} (totp={record.totp_enabled})")

        return LoginResult(
            token=token,
            username=username,
            totp_enabled=record.totp_enabled,
            expires_in=self.sessions.ttl_seconds,
        )

    def logout(self, token: str) -> None:
        """Revoke a session. TOTP state is untouched."""
        self.sessions.revoke(token)

    def logout_all(self, username: str) -> int:
        """Revoke every session of ``username``."""
        return self.sessions.revoke_all(username)

    def authenticate(self, token: Optional[str]) -> str:
        """
        Resolve a session token to its username.

        Raises:
            SessionInvalid: If the token is missing, unknown or expired.
        """
        if not token:
            raise SessionInvalid("no session token")
        username = self.sessions.validate(token)
        if username is None:
            raise SessionInvalid("invalid or expired session")
        return username

    # ==========================================
    # TOTP Lifecycle
    # ==========================================

    def status(self, username: str) -> UserSecurityRecord:
        return self._load(username)

    def generate(self, username: str) -> totp.TOTPProvisioning:
        """
        Start enrolment: create a new pending secret.

        Overwrites any earlier pending secret. An already enabled secret stays
        enforced until the new one is confirmed through ``enable``.
        """
        provisioning = totp.setup_totp(username, issuer=self.issuer)
        self._update(username, lambda record: record.with_pending(provisioning.secret))
        logger.info(f"TOTP secret generated for user: {username}")
        return provisioning

    def enable(self, username: str, secret: str, code: str) -> UserSecurityRecord:
        """
        Confirm the pending secret with a code and start enforcing it.

        ``secret`` must be the one most recently returned by ``generate``;
        a secret the server never issued is rejected.

        Raises:
            ValidationFailure: No pending secret, secret mismatch, or bad code.
        """
        now = self.clock()

        def confirm(record: UserSecurityRecord) -> UserSecurityRecord:
            pending = record.totp_pending_secret
            if pending is None:
                raise ValidationFailure("no pending secret")
            if not hmac.compare_digest(
                _normalize_secret(secret).encode("ascii", "replace"),
                _normalize_secret(pending).encode("ascii", "replace"),
            ):
                raise ValidationFailure("secret does not match pending secret")
            if not totp.validate_code(pending, code, now):
                raise ValidationFailure("invalid verification code")
            return record.with_pending_confirmed()

        record = self._update(username, confirm)
        logger.info(f"TOTP enabled for user: {username}")
        return record

    def disable(self, username: str) -> UserSecurityRecord:
        """Turn the second factor off and forget all secrets. Idempotent."""
        record = self._update(username, lambda record: record.with_totp_cleared())
        logger.info(f"TOTP disabled for user: {username}")
        return record

    # ==========================================
    # Store Access
    # ==========================================

    def _load(self, username: str) -> UserSecurityRecord:
        record = self.store.get(username)
        if record is None:
            # Session outlived its user
            raise SessionInvalid(f"no security record for {username}")
        return record

    def _update(
        self,
        username: str,
        mutate: Callable[[UserSecurityRecord], UserSecurityRecord],
    ) -> UserSecurityRecord:
        """
        Read-modify-write one record, retrying once on a concurrent write.

        ``mutate`` may raise to abort; nothing is written in that case.
        """
        retries = 1
        while True:
            record = self._load(username)
            updated = mutate(record)
            if updated == record:
                return record
            try:
                return self.store.put(updated, expected_version=record.version)
            except StoreConflict:
                if retries == 0:
                    raise
                retries -= 1
                logger.warning(f"Security record conflict for {username}, retrying")
