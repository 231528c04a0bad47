"""
FastAPI Dependencies for totpgate API.

Provides:
- The two-factor auth service (SQL or in-memory backend)
- Session authentication
- Login rate limiting (Redis-backed, in-memory fallback)
"""
import os
import time
import logging
from typing import Optional, Dict

import redis
from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from ..auth.service import TwoFactorAuthService
from ..database.auth_db import AuthDB, get_auth_db
from ..database.memory import InMemoryBackend
from ..database.stores import SQLCredentialVerifier, SQLSecretStore, SQLSessionManager
from ..utils.secrets import get_secret

logger = logging.getLogger(__name__)


# ============================================
# Redis Client
# ============================================

_redis_client: Optional[redis.Redis] = None


def get_redis_client() -> Optional[redis.Redis]:
    """
    Get Redis client singleton.

    Returns None if Redis is not configured or unavailable.
    """
    global _redis_client

    if _redis_client is not None:
        return _redis_client

    host = os.getenv("REDIS_HOST", "localhost")
    port = int(os.getenv("REDIS_PORT", "6379"))
    password = get_secret("REDIS_PASSWORD") or None
    db = int(os.getenv("REDIS_DB", "0"))

    try:
        client = redis.Redis(
            host=host,
            port=port,
            password=password,
            db=db,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
        )
        client.ping()
        logger.info(f"Redis connected: {host}:{port}")
        _redis_client = client
        return _redis_client
    except redis.RedisError as e:
        logger.warning(f"Redis connection failed: {e}. Rate limiting will use in-memory fallback.")
        return None


# Security scheme
security = HTTPBearer(auto_error=False)


# ============================================
# Service Dependencies
# ============================================

def storage_backend() -> str:
    return os.getenv("STORAGE_BACKEND", "sql").lower()


def build_sql_service(db: AuthDB) -> TwoFactorAuthService:
    """Wire the service onto one SQL database."""
    return TwoFactorAuthService(
        verifier=SQLCredentialVerifier(db),
        store=SQLSecretStore(db),
        sessions=SQLSessionManager(db),
        issuer=os.getenv("TOTP_ISSUER", "totpgate"),
    )


def build_memory_service(backend: InMemoryBackend) -> TwoFactorAuthService:
    """Wire the service onto in-memory collaborators."""
    return TwoFactorAuthService(
        verifier=backend.verifier,
        store=backend.store,
        sessions=backend.sessions,
        issuer=os.getenv("TOTP_ISSUER", "totpgate"),
    )


_auth_service: Optional[TwoFactorAuthService] = None


def get_auth_service() -> TwoFactorAuthService:
    """
    Get the auth service singleton.

    ``STORAGE_BACKEND=memory`` keeps everything in process (development);
    anything else uses the SQL database.
    """
    global _auth_service
    if _auth_service is None:
        backend = storage_backend()
        if backend == "memory":
            logger.warning("Using in-memory auth storage; state is lost on restart")
            _auth_service = build_memory_service(InMemoryBackend())
        else:
            _auth_service = build_sql_service(get_auth_db())
    return _auth_service


# ============================================
# Authentication Dependencies
# ============================================

async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    service: TwoFactorAuthService = Depends(get_auth_service),
) -> Dict:
    """
    Validate bearer token and return the current user.

    Raises:
        SessionInvalid: If token is missing, invalid, or expired.
    """
    token = credentials.credentials if credentials is not None else None
    username = service.authenticate(token)

    # Store token in user dict for logout
    return {"username": username, "_session_token": token}


# ============================================
# Login Rate Limiting (IP-based)
# ============================================

class AuthRateLimiter:
    """
    Rate limiter for the login endpoint (IP-based).

    Uses Redis INCR with TTL when available, in-memory sliding window otherwise.
    """

    def __init__(self, redis_client: Optional[redis.Redis] = None, login_limit: Optional[int] = None):
        self.redis = redis_client
        if login_limit is None:
            login_limit = int(os.getenv("LOGIN_RATE_LIMIT", "10"))
        self.login_limit = login_limit  # per 15 minutes
        self.window_seconds = 900
        # In-memory fallback storage
        self._memory_store: Dict[str, list] = {}

    def _get_count(self, key: str, window_seconds: int) -> int:
        """Get current count for a key."""
        if self.redis is not None:
            try:
                count = self.redis.get(f"totpgate:auth_ratelimit:{key}")
                return int(count) if count else 0
            except redis.RedisError as e:
                logger.warning(f"Redis error in auth rate limit check: {e}")

        now = time.time()
        if key not in self._memory_store:
            return 0
        self._memory_store[key] = [
            ts for ts in self._memory_store[key]
            if now - ts < window_seconds
        ]
        return len(self._memory_store[key])

    def _increment(self, key: str, window_seconds: int) -> int:
        """Increment counter for a key."""
        if self.redis is not None:
            try:
                pipe = self.redis.pipeline()
                pipe.incr(f"totpgate:auth_ratelimit:{key}")
                pipe.expire(f"totpgate:auth_ratelimit:{key}", window_seconds)
                results = pipe.execute()
                return results[0]
            except redis.RedisError as e:
                logger.warning(f"Redis error in auth rate limit increment: {e}")

        now = time.time()
        if key not in self._memory_store:
            self._memory_store[key] = []
        self._memory_store[key] = [
            ts for ts in self._memory_store[key]
            if now - ts < window_seconds
        ]
        self._memory_store[key].append(now)
        return len(self._memory_store[key])

    def check_login_limit(self, ip: str) -> tuple[bool, int]:
        """
        Check if IP is within login rate limit.

        Returns:
            Tuple of (allowed, remaining_requests)
        """
        count = self._get_count(f"login:{ip}", self.window_seconds)
        remaining = self.login_limit - count
        return remaining > 0, max(0, remaining)

    def record_login(self, ip: str) -> None:
        """Record a login attempt from an IP."""
        self._increment(f"login:{ip}", self.window_seconds)


_auth_rate_limiter: Optional[AuthRateLimiter] = None


def get_auth_rate_limiter() -> AuthRateLimiter:
    """Get singleton auth rate limiter."""
    global _auth_rate_limiter
    if _auth_rate_limiter is None:
        _auth_rate_limiter = AuthRateLimiter(get_redis_client())
    return _auth_rate_limiter


async def check_login_rate_limit(request: Request) -> None:
    """
    Dependency to check login rate limit by IP.

    Raises HTTPException 429 if limit exceeded.
    """
    if os.getenv("RATE_LIMIT_ENABLED", "true").lower() != "true":
        return

    ip = request.client.host if request.client else "unknown"
    limiter = get_auth_rate_limiter()

    allowed, remaining = limiter.check_login_limit(ip)
    if not allowed:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many login attempts from this IP. Try again later.",
            headers={
                "Retry-After": str(limiter.window_seconds),
                "X-RateLimit-Remaining": "0",
            },
        )

    limiter.record_login(ip)
