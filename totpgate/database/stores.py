"""
SQL-backed implementations of the authentication collaborators.

All three share one ``AuthDB`` (and so one connection pool):
- SQLCredentialVerifier: bcrypt check against ``users.password_hash``
- SQLSecretStore: TOTP columns of ``users`` with compare-and-set on ``totp_version``
- SQLSessionManager: the ``sessions`` table
"""
import os
import secrets
import logging
from typing import Optional
from datetime import datetime, timedelta, timezone

from sqlalchemy import text

from .auth_db import AuthDB, dummy_password_hash, verify_password
from ..auth.errors import StoreConflict
from ..auth.interfaces import CredentialVerifier, SecretStore, SessionManager
from ..auth.state import UserSecurityRecord, state_from_columns, state_to_columns

logger = logging.getLogger(__name__)


class SQLCredentialVerifier(CredentialVerifier):
    """Password check against the users table."""

    def __init__(self, db: AuthDB):
        self.db = db

    def verify(self, username: str, password: str) -> bool:
        with self.db.get_session() as session:
            result = session.execute(
                text("SELECT password_hash FROM users WHERE username = :username"),
                {"username": username}
            ).fetchone()

        if result is None:
            # Burn the same bcrypt time as a real check
            verify_password(password, dummy_password_hash())
            return False

        return verify_password(password, result[0])


class SQLSecretStore(SecretStore):
    """
    TOTP state stored on the user row.

    ``put`` is a single conditional UPDATE; zero affected rows means another
    writer got there first (or the user is gone).
    """

    def __init__(self, db: AuthDB):
        self.db = db

    def get(self, username: str) -> Optional[UserSecurityRecord]:
        with self.db.get_session() as session:
            result = session.execute(
                text("""
                    SELECT totp_secret, totp_pending_secret, totp_enabled, totp_version
                    FROM users
                    WHERE username = :username
                """),
                {"username": username}
            ).fetchone()

        if result is None:
            return None

        return UserSecurityRecord(
            username=username,
            totp=state_from_columns(result[0], result[1], bool(result[2])),
            version=result[3],
        )

    def put(self, record: UserSecurityRecord, expected_version: int) -> UserSecurityRecord:
        new_version = expected_version + 1
        params = state_to_columns(record.totp)
        params.update({
            "username": record.username,
            "expected_version": expected_version,
            "new_version": new_version,
            "updated_at": datetime.now(timezone.utc),
        })

        with self.db.get_session() as session:
            result = session.execute(
                text("""
                    UPDATE users
                    SET totp_secret = :totp_secret,
                        totp_pending_secret = :totp_pending_secret,
                        totp_enabled = :totp_enabled,
                        totp_version = :new_version,
                        updated_at = :updated_at
                    WHERE username = :username AND totp_version = :expected_version
                """),
                params
            )
            if result.rowcount != 1:
                raise StoreConflict(
                    f"security record for {record.username} changed (expected v{expected_version})"
                )

        logger.debug(f"Stored security record for {record.username} v{new_version} ({record.state_name})")
        return UserSecurityRecord(username=record.username, totp=record.totp, version=new_version)


class SQLSessionManager(SessionManager):
    """Opaque session tokens in the sessions table."""

    def __init__(self, db: AuthDB, ttl_hours: Optional[int] = None):
        self.db = db
        if ttl_hours is None:
            ttl_hours = int(os.getenv("SESSION_TTL_HOURS", "24"))
        self.ttl_seconds = ttl_hours * 3600

    def create(self, username: str) -> str:
        session_token = secrets.token_hex(32)  # 64 char hex string
        now = datetime.now(timezone.utc)
        expires_at = now + timedelta(seconds=self.ttl_seconds)

        with self.db.get_session() as session:
            session.execute(
                text("""
                    INSERT INTO sessions (session_token, username, is_active, created_at, expires_at)
                    VALUES (:session_token, :username, TRUE, :created_at, :expires_at)
                """),
                {
                    "session_token": session_token,
                    "username": username,
                    "created_at": now,
                    "expires_at": expires_at,
                }
            )
            session.execute(
                text("UPDATE users SET last_login = :now WHERE username = :username"),
                {"now": now, "username": username}
            )

        logger.debug(f"Created session for user {username}, expires {expires_at}")
        return session_token

    def validate(self, token: str) -> Optional[str]:
        now = datetime.now(timezone.utc)

        with self.db.get_session() as session:
            result = session.execute(
                text("""
                    SELECT username FROM sessions
                    WHERE session_token = :token
                      AND is_active = TRUE
                      AND expires_at > :now
                """),
                {"token": token, "now": now}
            ).fetchone()

        return result[0] if result else None

    def revoke(self, token: str) -> None:
        with self.db.get_session() as session:
            session.execute(
                text("UPDATE sessions SET is_active = FALSE WHERE session_token = :token"),
                {"token": token}
            )
        logger.debug("Invalidated session")

    def revoke_all(self, username: str) -> int:
        """
        Invalidate every session of a user (logout from all devices).

        Returns:
            Number of sessions invalidated.
        """
        with self.db.get_session() as session:
            result = session.execute(
                text("""
                    UPDATE sessions
                    SET is_active = FALSE
                    WHERE username = :username AND is_active = TRUE
                """),
                {"username": username}
            )
            count = result.rowcount
        logger.info(f"Invalidated {count} sessions for user {username}")
        return count
