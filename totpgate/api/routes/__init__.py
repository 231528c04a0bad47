"""
API Routes for totpgate.
"""
from .auth import router as auth_router
from .totp import router as totp_router
from .health import router as health_router

__all__ = [
    "auth_router",
    "totp_router",
    "health_router",
]
