"""
Pydantic Models for totpgate API.

Request and response models for all API endpoints.
"""
from datetime import datetime
from typing import Optional, Dict
from pydantic import BaseModel, Field, ConfigDict


# ============================================
# Authentication Models
# ============================================

class UserLogin(BaseModel):
    """
    User login request.

    Authenticate with username and password. If TOTP is enabled for the
    account, also provide the current 6-digit code. A code sent for an
    account without TOTP is ignored.
    """
    username: str = Field(..., description="Account username")
    password: str = Field(..., description="Account password")
    code: Optional[str] = Field(None, description="6-digit TOTP code from authenticator app")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "username": "totpuser",
                "password": "password",
                "code": "123456"
            }
        }
    )


class TokenResponse(BaseModel):
    """Authentication token response."""
    access_token: str
    token_type: str = "bearer"
    expires_in: int = Field(..., description="Token expiration in seconds")
    username: str
    totp_enabled: bool


class MessageResponse(BaseModel):
    """Plain acknowledgement."""
    message: str


class UserResponse(BaseModel):
    """Current user's profile."""
    username: str
    totp_enabled: bool
    totp_pending: bool


# ============================================
# TOTP Models
# ============================================

class TOTPGenerateResponse(BaseModel):
    """
    New pending TOTP secret.

    The secret is not enforced until confirmed with /auth/totp/enable.
    """
    secret: str
    provisioning_uri: str
    qr_code_base64: str


class TOTPEnableRequest(BaseModel):
    """Confirm the pending secret with a code from the authenticator app."""
    secret: str = Field(..., description="Secret returned by /auth/totp/generate")
    code: str = Field(..., description="Current 6-digit code for that secret")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "secret": "JBSWY3DPEHPK3PXPJBSWY3DPEHPK3PXP",
                "code": "123456"
            }
        }
    )


class TOTPStatusResponse(BaseModel):
    """Second-factor status of the current user."""
    enabled: bool
    pending: bool
    message: Optional[str] = None


# ============================================
# Health Models
# ============================================

class HealthStatus(BaseModel):
    """Health check response."""
    status: str = Field(..., description="healthy or unhealthy")
    version: str
    services: Dict[str, str]
    timestamp: datetime


# ============================================
# Error Models
# ============================================

class ErrorResponse(BaseModel):
    """
    Standard error response.

    All API errors return this format with an error message,
    optional detail, and error code for programmatic handling.
    """
    error: str = Field(..., description="Error type/summary")
    detail: Optional[str] = Field(None, description="Detailed error message")
    code: Optional[str] = Field(None, description="Error code for programmatic handling")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "error": "Forbidden",
                "detail": "Invalid credentials",
                "code": "AUTH_FAILED"
            }
        }
    )
