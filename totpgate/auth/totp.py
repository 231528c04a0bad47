"""
TOTP (Time-based One-Time Password) engine for totpgate.

Implements RFC 6238 codes (SHA-1, 6 digits, 30-second step) on top of pyotp.
Compatible with Google Authenticator, Authy, and other TOTP apps.

All functions are stateless; persisting secrets is the caller's job.
"""
import base64
import io
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Union

import pyotp
import qrcode

DIGITS = 6
STEP_SECONDS = 30
# Accept the current step plus one step either side (+-30s clock skew)
VALID_WINDOW = 1

TimeLike = Union[int, float, datetime]


@dataclass(frozen=True)
class TOTPProvisioning:
    """Everything a client needs to enrol a new secret."""
    secret: str
    provisioning_uri: str
    qr_code_base64: str


def generate_secret() -> str:
    """
    Generate a new TOTP secret.

    Returns:
        Base32-encoded secret (32 characters, 160 bits of entropy).
    """
    return pyotp.random_base32()


def current_code(secret: str, for_time: Optional[TimeLike] = None) -> str:
    """
    Compute the code an authenticator app would show for ``secret``.

    Used by tests and client tooling; the server never needs it to validate.

    Args:
        secret: Base32-encoded TOTP secret.
        for_time: Unix timestamp or datetime. Defaults to now.

    Returns:
        6-digit code as a zero-padded string.
    """
    totp = pyotp.TOTP(secret, digits=DIGITS, interval=STEP_SECONDS)
    return totp.at(_as_datetime(for_time))


def _as_datetime(for_time: Optional[TimeLike]) -> datetime:
    # pyotp maps naive datetimes through local time (time.mktime), which
    # shifts the step during a DST fold; aware ones go through calendar.timegm.
    if isinstance(for_time, datetime):
        return for_time
    if for_time is None:
        return datetime.now(timezone.utc)
    return datetime.fromtimestamp(for_time, tz=timezone.utc)


def _normalize_code(code: Optional[str]) -> Optional[str]:
    if not isinstance(code, str):
        return None
    code = code.strip()
    if len(code) != DIGITS or not (code.isascii() and code.isdigit()):
        return None
    return code


def validate_code(
    secret: Optional[str],
    code: Optional[str],
    for_time: Optional[TimeLike] = None,
) -> bool:
    """
    Verify a TOTP code against the secret.

    The code is accepted for the current time step or one step before or
    after. Comparison is constant time (pyotp uses hmac.compare_digest).

    Args:
        secret: Base32-encoded TOTP secret.
        code: Code entered by the user.
        for_time: Unix timestamp or datetime. Defaults to now.

    Returns:
        True if the code is valid, False otherwise. Malformed input
        (missing, non-numeric, wrong length, undecodable secret) is
        never an exception, just False.
    """
    if not secret:
        return False

    code = _normalize_code(code)
    if code is None:
        return False

    totp = pyotp.TOTP(secret, digits=DIGITS, interval=STEP_SECONDS)
    try:
        return totp.verify(code, for_time=_as_datetime(for_time), valid_window=VALID_WINDOW)
    except (ValueError, TypeError):
        # binascii.Error (bad base32) is a ValueError subclass
        return False


def provisioning_uri(secret: str, username: str, issuer: str = "totpgate") -> str:
    """
    Generate a provisioning URI for TOTP apps.

    This URI can be encoded as a QR code for easy scanning.

    Args:
        secret: Base32-encoded TOTP secret.
        username: Account name displayed in the authenticator app.
        issuer: Application name displayed in the authenticator app.

    Returns:
        otpauth:// URI string.
    """
    totp = pyotp.TOTP(secret, digits=DIGITS, interval=STEP_SECONDS)
    return totp.provisioning_uri(name=username, issuer_name=issuer)


def generate_qr_code(uri: str) -> bytes:
    """
    Generate a PNG QR code for the provisioning URI.
    """
    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_L,
        box_size=10,
        border=4,
    )
    qr.add_data(uri)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")

    buffer = io.BytesIO()
    img.save(buffer, format='PNG')
    return buffer.getvalue()


def generate_qr_code_base64(uri: str) -> str:
    """Generate a data URI (base64 PNG) QR code for embedding in HTML."""
    b64 = base64.b64encode(generate_qr_code(uri)).decode('utf-8')
    return f"data:image/png;base64,{b64}"


def setup_totp(username: str, issuer: str = "totpgate") -> TOTPProvisioning:
    """
    Complete enrolment material: secret, URI, and QR code.

    Args:
        username: Account name shown in the authenticator app.
        issuer: Application name.
    """
    secret = generate_secret()
    uri = provisioning_uri(secret, username, issuer)
    return TOTPProvisioning(
        secret=secret,
        provisioning_uri=uri,
        qr_code_base64=generate_qr_code_base64(uri),
    )
