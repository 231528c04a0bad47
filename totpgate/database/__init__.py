"""
Storage backends for totpgate.

This package provides:
- auth_db: SQLAlchemy connection manager, schema and password hashing
- stores: SQL implementations of the verifier, secret store and session manager
- memory: in-memory implementations of the same interfaces
"""
from .auth_db import AuthDB, get_auth_db, hash_password, verify_password
from .memory import (
    InMemoryBackend,
    InMemoryCredentialVerifier,
    InMemorySecretStore,
    InMemorySessionManager,
)
from .stores import SQLCredentialVerifier, SQLSecretStore, SQLSessionManager

__all__ = [
    "AuthDB",
    "get_auth_db",
    "hash_password",
    "verify_password",
    "InMemoryBackend",
    "InMemoryCredentialVerifier",
    "InMemorySecretStore",
    "InMemorySessionManager",
    "SQLCredentialVerifier",
    "SQLSecretStore",
    "SQLSessionManager",
]
