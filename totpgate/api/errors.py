"""
Mapping from authentication errors to HTTP responses.

Routes and the service only raise ``AuthError`` subclasses. This module is
the single place that decides what a client sees, and it sees the same
status and body for every cause within a kind. The internal ``reason`` is
logged, never returned.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from ..auth.errors import (
    AuthError,
    AuthenticationFailure,
    SessionInvalid,
    StoreConflict,
    ValidationFailure,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PublicError:
    status_code: int
    error: str
    detail: str
    code: str
    headers: Dict[str, str] = field(default_factory=dict)

    def body(self) -> dict:
        return {"error": self.error, "detail": self.detail, "code": self.code}


ERROR_TABLE = {
    AuthenticationFailure: PublicError(
        status.HTTP_403_FORBIDDEN, "Forbidden", "Invalid credentials", "AUTH_FAILED",
    ),
    SessionInvalid: PublicError(
        status.HTTP_401_UNAUTHORIZED, "Unauthorized", "Authentication required", "AUTH_SESSION_INVALID",
        headers={"WWW-Authenticate": "Bearer"},
    ),
    ValidationFailure: PublicError(
        status.HTTP_400_BAD_REQUEST, "Bad Request", "Invalid secret or verification code", "TOTP_INVALID",
    ),
    StoreConflict: PublicError(
        status.HTTP_503_SERVICE_UNAVAILABLE, "Service Unavailable", "Concurrent update, please retry", "STORE_CONFLICT",
        headers={"Retry-After": "1"},
    ),
}

# Unknown AuthError subclasses fail closed
DEFAULT_ERROR = ERROR_TABLE[AuthenticationFailure]


def public_error(exc: AuthError) -> PublicError:
    """Look up the public response for an error (walks the class hierarchy)."""
    for cls in type(exc).__mro__:
        if cls in ERROR_TABLE:
            return ERROR_TABLE[cls]
    return DEFAULT_ERROR


def error_response(exc: AuthError) -> JSONResponse:
    mapped = public_error(exc)
    return JSONResponse(
        status_code=mapped.status_code,
        content=mapped.body(),
        headers=dict(mapped.headers) or None,
    )


def register_error_handlers(app: FastAPI) -> None:
    """Install the AuthError handler on ``app``."""

    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError):
        logger.info(
            f"{request.method} {request.url.path} rejected: "
            f"{type(exc).__name__} ({exc.reason})"
        )
        return error_response(exc)
