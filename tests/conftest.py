"""
Pytest configuration and shared fixtures for totpgate tests.

This module provides common test fixtures for:
- A controllable clock (TOTP codes depend on time)
- In-memory and SQLite-backed auth collaborators
- A TestClient wired to an in-memory service
"""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from totpgate.api.main import app
from totpgate.api.deps import get_auth_service, check_login_rate_limit
from totpgate.auth.service import TwoFactorAuthService
from totpgate.database.auth_db import AuthDB, hash_password
from totpgate.database.memory import InMemoryBackend

# Start of a 30-second TOTP step (1_700_000_010 / 30 is an integer)
START_TIME = 1_700_000_010

TEST_USER = "totpuser"
TEST_PASSWORD = "password"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: float = START_TIME):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


async def no_rate_limit():
    """No-op rate limit check for tests."""
    pass


# ============================================
# Core Fixtures
# ============================================

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def backend(clock):
    """In-memory collaborators with one user (cheap bcrypt rounds)."""
    backend = InMemoryBackend(bcrypt_rounds=4, clock=clock)
    backend.add_user(TEST_USER, TEST_PASSWORD)
    return backend


@pytest.fixture
def service(backend, clock):
    return TwoFactorAuthService(
        verifier=backend.verifier,
        store=backend.store,
        sessions=backend.sessions,
        issuer="totpgate-test",
        clock=clock,
    )


# ============================================
# Database Fixtures
# ============================================

@pytest.fixture
def auth_db():
    """
    AuthDB on a private in-memory SQLite database.

    StaticPool keeps the single connection alive so every session sees the
    same database.
    """
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    db = AuthDB(engine=engine)
    db.init_schema()
    db.create_user(TEST_USER, hash_password(TEST_PASSWORD, rounds=4))
    yield db
    engine.dispose()


# ============================================
# API Fixtures
# ============================================

@pytest.fixture
def client(service):
    """TestClient whose routes use the in-memory ``service`` fixture."""
    app.dependency_overrides[get_auth_service] = lambda: service
    app.dependency_overrides[check_login_rate_limit] = no_rate_limit

    yield TestClient(app)

    app.dependency_overrides.clear()


def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
