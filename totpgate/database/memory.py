"""
In-memory implementations of the authentication collaborators.

Reference backends for development (``STORAGE_BACKEND=memory``) and tests.
State lives in dicts guarded by a lock, so they are safe under FastAPI's
threadpool but not shared between worker processes.
"""
import os
import time
import secrets
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from .auth_db import dummy_password_hash, hash_password, verify_password
from ..auth.errors import StoreConflict
from ..auth.interfaces import CredentialVerifier, SecretStore, SessionManager
from ..auth.state import UserSecurityRecord

logger = logging.getLogger(__name__)


class InMemoryCredentialVerifier(CredentialVerifier):
    """Username -> bcrypt hash table."""

    def __init__(self, bcrypt_rounds: int = 12):
        self.bcrypt_rounds = bcrypt_rounds
        self._hashes: Dict[str, str] = {}
        self._lock = threading.Lock()

    def add_user(self, username: str, password: str) -> None:
        password_hash = hash_password(password, rounds=self.bcrypt_rounds)
        with self._lock:
            if username in self._hashes:
                raise ValueError(f"User already exists: {username}")
            self._hashes[username] = password_hash

    def verify(self, username: str, password: str) -> bool:
        with self._lock:
            password_hash = self._hashes.get(username)
        if password_hash is None:
            verify_password(password, dummy_password_hash())
            return False
        return verify_password(password, password_hash)


class InMemorySecretStore(SecretStore):
    """Compare-and-set dict of security records."""

    def __init__(self):
        self._records: Dict[str, UserSecurityRecord] = {}
        self._lock = threading.Lock()

    def add(self, username: str) -> UserSecurityRecord:
        """Create the initial (no second factor) record for a user."""
        record = UserSecurityRecord(username=username)
        with self._lock:
            if username in self._records:
                raise ValueError(f"Security record already exists: {username}")
            self._records[username] = record
        return record

    def get(self, username: str) -> Optional[UserSecurityRecord]:
        with self._lock:
            return self._records.get(username)

    def put(self, record: UserSecurityRecord, expected_version: int) -> UserSecurityRecord:
        with self._lock:
            current = self._records.get(record.username)
            if current is None or current.version != expected_version:
                raise StoreConflict(
                    f"security record for {record.username} changed (expected v{expected_version})"
                )
            stored = UserSecurityRecord(
                username=record.username,
                totp=record.totp,
                version=expected_version + 1,
            )
            self._records[record.username] = stored
        return stored


@dataclass
class _Session:
    username: str
    created_at: float
    expires_at: float
    revoked: bool = False


class InMemorySessionManager(SessionManager):
    """Opaque tokens mapped to sessions with an expiry."""

    def __init__(self, ttl_hours: Optional[int] = None, clock: Callable[[], float] = time.time):
        if ttl_hours is None:
            ttl_hours = int(os.getenv("SESSION_TTL_HOURS", "24"))
        self.ttl_seconds = ttl_hours * 3600
        self.clock = clock
        self._sessions: Dict[str, _Session] = {}
        self._lock = threading.Lock()

    def create(self, username: str) -> str:
        token = secrets.token_hex(32)
        now = self.clock()
        with self._lock:
            self._prune(now)
            self._sessions[token] = _Session(username, now, now + self.ttl_seconds)
        return token

    def _prune(self, now: float) -> None:
        """Drop revoked and expired sessions. Caller holds the lock."""
        dead = [
            token for token, entry in self._sessions.items()
            if entry.revoked or entry.expires_at <= now
        ]
        for token in dead:
            del self._sessions[token]

    def validate(self, token: str) -> Optional[str]:
        with self._lock:
            entry = self._sessions.get(token)
        if entry is None or entry.revoked or entry.expires_at <= self.clock():
            return None
        return entry.username

    def revoke(self, token: str) -> None:
        with self._lock:
            entry = self._sessions.get(token)
            if entry is not None:
                entry.revoked = True

    def revoke_all(self, username: str) -> int:
        count = 0
        with self._lock:
            for entry in self._sessions.values():
                if entry.username == username and not entry.revoked:
                    entry.revoked = True
                    count += 1
        logger.info(f"Invalidated {count} sessions for user {username}")
        return count


class InMemoryBackend:
    """
    The three in-memory collaborators wired together.

    Example usage:
        backend = InMemoryBackend()
        backend.add_user("alice", "password")
        service = TwoFactorAuthService(backend.verifier, backend.store, backend.sessions)
    """

    def __init__(self, bcrypt_rounds: int = 12, clock: Callable[[], float] = time.time):
        self.verifier = InMemoryCredentialVerifier(bcrypt_rounds=bcrypt_rounds)
        self.store = InMemorySecretStore()
        self.sessions = InMemorySessionManager(clock=clock)

    def add_user(self, username: str, password: str) -> None:
        self.verifier.add_user(username, password)
        self.store.add(username)
