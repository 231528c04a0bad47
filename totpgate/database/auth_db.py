"""
SQL Database Manager for Authentication.

This module provides connection management and schema for:
- User credentials (username, bcrypt password hash)
- Per-user TOTP state (enabled secret, pending secret, version counter)
- Sessions

PostgreSQL in production; any SQLAlchemy engine works (tests use SQLite).
The SecretStore / SessionManager / CredentialVerifier implementations on top
of it live in ``stores.py``.
"""
import os
import logging
from typing import Optional, Dict
from datetime import datetime, timezone
from contextlib import contextmanager
from functools import lru_cache

import bcrypt
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import QueuePool

from ..utils.secrets import get_secret, mask_secret

logger = logging.getLogger(__name__)


def build_connection_string() -> str:
    """
    Resolve the database URL from the environment.

    ``DATABASE_URL`` (or ``DATABASE_URL_FILE``) wins; otherwise the URL is
    assembled from the ``POSTGRES_*`` variables.
    """
    url = get_secret("DATABASE_URL")
    if url:
        return url

    host = os.getenv("POSTGRES_HOST", "localhost")
    port = os.getenv("POSTGRES_PORT", "5432")
    db = os.getenv("POSTGRES_DB", "totpgate")
    user = os.getenv("POSTGRES_USER", "totpgate_user")
    password = get_secret("POSTGRES_PASSWORD", "")
    return f"postgresql://{user}:{password}@{host}:{port}/{db}"


class AuthDB:
    """
    SQL connection manager for credentials, TOTP state and sessions.

    Example usage:
        auth_db = AuthDB()
        auth_db.init_schema()

        # Create user
        auth_db.create_user("alice", hash_password("correct horse"))

        # Look up
        user = auth_db.get_user("alice")
    """

    def __init__(self, connection_string: Optional[str] = None, engine: Optional[Engine] = None):
        """
        Initialize database connection.

        Args:
            connection_string: SQLAlchemy URL. Uses environment variables if not provided.
            engine: Pre-built engine (takes precedence over connection_string).
        """
        if engine is None:
            if connection_string is None:
                connection_string = build_connection_string()

            if connection_string.startswith("sqlite"):
                engine = create_engine(connection_string)
            else:
                engine = create_engine(
                    connection_string,
                    poolclass=QueuePool,
                    pool_size=10,
                    max_overflow=20,
                    pool_timeout=30,
                    pool_pre_ping=True,  # Test connections before use (detect stale)
                    pool_recycle=300,    # Recycle connections every 5 minutes
                )
            logger.info(f"Auth database: {mask_secret(connection_string, visible_chars=12)}")

        self.engine = engine
        self.Session = sessionmaker(bind=self.engine)

    @contextmanager
    def get_session(self):
        """
        Get a database session with automatic cleanup.

        Usage:
            with auth_db.get_session() as session:
                result = session.execute(query)
        """
        session = self.Session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ==========================================
    # Users
    # ==========================================

    def create_user(self, username: str, password_hash: str) -> None:
        """
        Create a user with second factor disabled.

        Args:
            username: Unique username.
            password_hash: Bcrypt-hashed password.

        Raises:
            ValueError: If the username already exists.
        """
        now = datetime.now(timezone.utc)

        try:
            with self.get_session() as session:
                session.execute(
                    text("""
                        INSERT INTO users (
                            username, password_hash, totp_secret, totp_pending_secret,
                            totp_enabled, totp_version, created_at, updated_at
                        ) VALUES (
                            :username, :password_hash, NULL, NULL,
                            FALSE, 0, :created_at, :updated_at
                        )
                    """),
                    {
                        "username": username,
                        "password_hash": password_hash,
                        "created_at": now,
                        "updated_at": now,
                    }
                )
        except IntegrityError:
            raise ValueError(f"User already exists: {username}")

        logger.info(f"Created user: {username}")

    def get_user(self, username: str) -> Optional[Dict]:
        """
        Get a user row by username.

        Returns:
            User dict or None if not found.
        """
        with self.get_session() as session:
            result = session.execute(
                text("""
                    SELECT username, password_hash, totp_secret, totp_pending_secret,
                           totp_enabled, totp_version, last_login, created_at
                    FROM users
                    WHERE username = :username
                """),
                {"username": username}
            ).fetchone()

            if result is None:
                return None

            return {
                "username": result[0],
                "password_hash": result[1],
                "totp_secret": result[2],
                "totp_pending_secret": result[3],
                "totp_enabled": bool(result[4]),
                "totp_version": result[5],
                "last_login": result[6],
                "created_at": result[7],
            }

    # ==========================================
    # Schema Initialization
    # ==========================================

    def init_schema(self) -> None:
        """
        Initialize database schema (create tables if not exist).

        Safe to call on every startup.
        """
        with self.get_session() as session:
            session.execute(text("""
                CREATE TABLE IF NOT EXISTS users (
                    username VARCHAR(255) PRIMARY KEY,
                    password_hash VARCHAR(255) NOT NULL,
                    totp_secret VARCHAR(64),
                    totp_pending_secret VARCHAR(64),
                    totp_enabled BOOLEAN NOT NULL DEFAULT FALSE,
                    totp_version INTEGER NOT NULL DEFAULT 0,
                    last_login TIMESTAMP WITH TIME ZONE,
                    created_at TIMESTAMP WITH TIME ZONE NOT NULL,
                    updated_at TIMESTAMP WITH TIME ZONE NOT NULL,
                    CHECK (totp_enabled = FALSE OR totp_secret IS NOT NULL)
                )
            """))

            session.execute(text("""
                CREATE TABLE IF NOT EXISTS sessions (
                    session_token VARCHAR(64) PRIMARY KEY,
                    username VARCHAR(255) NOT NULL REFERENCES users(username) ON DELETE CASCADE,
                    is_active BOOLEAN NOT NULL DEFAULT TRUE,
                    created_at TIMESTAMP WITH TIME ZONE NOT NULL,
                    expires_at TIMESTAMP WITH TIME ZONE NOT NULL
                )
            """))

            session.execute(text("""
                CREATE INDEX IF NOT EXISTS idx_sessions_user ON sessions(username)
            """))
            session.execute(text("""
                CREATE INDEX IF NOT EXISTS idx_sessions_expires ON sessions(expires_at)
            """))

        logger.info("Database schema initialized")


# ==========================================
# Password Hashing Utilities
# ==========================================

def hash_password(password: str, rounds: int = 12) -> str:
    """
    Hash a password using bcrypt.

    Args:
        password: Plain text password.
        rounds: Bcrypt cost factor.

    Returns:
        Bcrypt hash string.
    """
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify a password against its hash.

    Args:
        password: Plain text password to verify.
        password_hash: Stored bcrypt hash.

    Returns:
        True if password matches, False otherwise (including a corrupt hash).
    """
    try:
        return bcrypt.checkpw(
            password.encode('utf-8'),
            password_hash.encode('utf-8')
        )
    except ValueError:
        return False


@lru_cache(maxsize=1)
def dummy_password_hash() -> str:
    """Hash checked for unknown users so lookups cost the same as real ones."""
    return hash_password("totpgate-unknown-user")


# Singleton instance
_auth_db_instance: Optional[AuthDB] = None


def get_auth_db() -> AuthDB:
    """
    Get singleton AuthDB instance.

    Returns:
        AuthDB instance.
    """
    global _auth_db_instance
    if _auth_db_instance is None:
        _auth_db_instance = AuthDB()
    return _auth_db_instance
