"""
Authentication Endpoints.

Provides login (password plus optional TOTP code), logout and the current
user's profile.
"""
import logging
from typing import Dict

from fastapi import APIRouter, Depends

from ..models import (
    UserLogin,
    TokenResponse,
    MessageResponse,
    UserResponse,
    ErrorResponse,
)
from ..deps import get_auth_service, get_current_user, check_login_rate_limit
from ...auth.service import TwoFactorAuthService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post(
    "/login",
    response_model=TokenResponse,
    responses={
        403: {"model": ErrorResponse, "description": "Invalid credentials or second factor"},
        429: {"model": ErrorResponse, "description": "Too many attempts from this IP"},
    },
    dependencies=[Depends(check_login_rate_limit)],
)
async def login(
    credentials: UserLogin,
    service: TwoFactorAuthService = Depends(get_auth_service),
):
    """
    Authenticate user and return access token.

    If TOTP is enabled for the account, `code` must hold the current
    6-digit code. Wrong password, missing code and wrong code all return
    the same 403 response.
    """
    result = service.login(credentials.username, credentials.password, credentials.code)

    return TokenResponse(
        access_token=result.token,
        token_type="bearer",
        expires_in=result.expires_in,
        username=result.username,
        totp_enabled=result.totp_enabled,
    )


@router.post(
    "/logout",
    response_model=MessageResponse,
    responses={401: {"model": ErrorResponse, "description": "No valid session"}},
)
async def logout(
    user: Dict = Depends(get_current_user),
    service: TwoFactorAuthService = Depends(get_auth_service),
):
    """
    Logout current session.

    Invalidates the current access token. TOTP settings are unchanged.
    """
    service.logout(user["_session_token"])
    logger.info(f"User logged out: {user['username']}")

    return MessageResponse(message="Logged out")


@router.post(
    "/logout/all",
    response_model=MessageResponse,
    responses={401: {"model": ErrorResponse, "description": "No valid session"}},
)
async def logout_all(
    user: Dict = Depends(get_current_user),
    service: TwoFactorAuthService = Depends(get_auth_service),
):
    """
    Logout from all devices.

    Invalidates all sessions for the current user.
    """
    count = service.logout_all(user["username"])
    logger.info(f"User {user['username']} logged out from {count} sessions")

    return MessageResponse(message=f"Logged out from {count} sessions")


@router.get("/me", response_model=UserResponse)
async def get_current_user_profile(
    user: Dict = Depends(get_current_user),
    service: TwoFactorAuthService = Depends(get_auth_service),
):
    """Get current user profile."""
    record = service.status(user["username"])

    return UserResponse(
        username=record.username,
        totp_enabled=record.totp_enabled,
        totp_pending=record.totp_pending_secret is not None,
    )
