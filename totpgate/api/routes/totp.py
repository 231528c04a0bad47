"""
TOTP Management Endpoints.

Enrolment is a two-step handshake:
1. POST /auth/totp/generate returns a new pending secret (and QR code)
2. POST /auth/totp/enable with that secret and a current code turns it on

Until step 2 succeeds the pending secret is never asked for at login.
"""
import logging
from typing import Dict

from fastapi import APIRouter, Depends

from ..models import (
    TOTPGenerateResponse,
    TOTPEnableRequest,
    TOTPStatusResponse,
    ErrorResponse,
)
from ..deps import get_auth_service, get_current_user
from ...auth.service import TwoFactorAuthService

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/auth/totp",
    tags=["TOTP"],
    responses={401: {"model": ErrorResponse, "description": "No valid session"}},
)


@router.get("", response_model=TOTPStatusResponse)
async def totp_status(
    user: Dict = Depends(get_current_user),
    service: TwoFactorAuthService = Depends(get_auth_service),
):
    """Report whether TOTP is enabled and whether a secret awaits confirmation."""
    record = service.status(user["username"])
    return TOTPStatusResponse(
        enabled=record.totp_enabled,
        pending=record.totp_pending_secret is not None,
    )


@router.post(
    "/generate",
    response_model=TOTPGenerateResponse,
    responses={503: {"model": ErrorResponse, "description": "Concurrent update, retry"}},
)
async def generate_totp(
    user: Dict = Depends(get_current_user),
    service: TwoFactorAuthService = Depends(get_auth_service),
):
    """
    Generate a new TOTP secret.

    Returns the secret, an otpauth:// URI and a QR code for authenticator
    apps. The secret replaces any earlier pending one. If TOTP is already
    enabled, the current secret keeps working until the new one is enabled.
    """
    provisioning = service.generate(user["username"])

    return TOTPGenerateResponse(
        secret=provisioning.secret,
        provisioning_uri=provisioning.provisioning_uri,
        qr_code_base64=provisioning.qr_code_base64,
    )


@router.post(
    "/enable",
    response_model=TOTPStatusResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Stale secret or invalid code"},
        503: {"model": ErrorResponse, "description": "Concurrent update, retry"},
    },
)
async def enable_totp(
    request: TOTPEnableRequest,
    user: Dict = Depends(get_current_user),
    service: TwoFactorAuthService = Depends(get_auth_service),
):
    """
    Enable TOTP.

    `secret` must be the one most recently returned by /generate, and `code`
    the current code for it.
    """
    service.enable(user["username"], request.secret, request.code)

    return TOTPStatusResponse(enabled=True, pending=False, message="TOTP enabled")


@router.post(
    "/disable",
    response_model=TOTPStatusResponse,
    responses={503: {"model": ErrorResponse, "description": "Concurrent update, retry"}},
)
async def disable_totp(
    user: Dict = Depends(get_current_user),
    service: TwoFactorAuthService = Depends(get_auth_service),
):
    """
    Disable TOTP for the current user.

    Clears both the enabled and any pending secret. Disabling twice is fine.
    """
    service.disable(user["username"])

    return TOTPStatusResponse(enabled=False, pending=False, message="TOTP disabled")
