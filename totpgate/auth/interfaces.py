"""
Collaborator interfaces consumed by the two-factor service.

Concrete implementations live in ``totpgate.database`` (SQL and in-memory).
"""
from abc import ABC, abstractmethod
from typing import Optional

from .state import UserSecurityRecord


class CredentialVerifier(ABC):
    """Checks a username/password pair against stored credentials."""

    @abstractmethod
    def verify(self, username: str, password: str) -> bool:
        """Return True only for a known user with a matching password."""


class SecretStore(ABC):
    """
    Keyed storage for ``UserSecurityRecord``.

    Writes are compare-and-set on ``record.version``: ``put`` succeeds only
    if the stored version still equals ``expected_version``, and the stored
    copy then carries ``expected_version + 1``.
    """

    @abstractmethod
    def get(self, username: str) -> Optional[UserSecurityRecord]:
        """Return the record, or None if the user has none."""

    @abstractmethod
    def put(self, record: UserSecurityRecord, expected_version: int) -> UserSecurityRecord:
        """
        Store ``record`` atomically.

        Returns:
            The stored record with its new version.

        Raises:
            StoreConflict: If the record changed (or vanished) since it was read.
        """


class SessionManager(ABC):
    """Issues, validates and revokes session tokens."""

    ttl_seconds: int = 24 * 3600

    @abstractmethod
    def create(self, username: str) -> str:
        """Start a session and return its token."""

    @abstractmethod
    def revoke(self, token: str) -> None:
        """End a session. Unknown tokens are ignored."""

    @abstractmethod
    def validate(self, token: str) -> Optional[str]:
        """Return the username for a live token, else None."""

    @abstractmethod
    def revoke_all(self, username: str) -> int:
        """End every session of ``username``; return how many were live."""
