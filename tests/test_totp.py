"""
Tests for the TOTP engine.

Covers:
- RFC 6238 reference codes
- Clock-skew window
- Malformed input handling
- Secret generation and provisioning material
"""
import base64
import os
import time
from datetime import datetime, timezone

import pyotp
import pytest

from totpgate.auth import totp

# RFC 6238 appendix B SHA-1 seed "12345678901234567890", base32-encoded
RFC_SECRET = "GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ"

# Start of a 30-second step
T0 = 1_700_000_010


class TestCurrentCode:
    """Test code derivation."""

    @pytest.mark.parametrize("for_time,expected", [
        (59, "287082"),
        (1111111109, "081804"),
        (1111111111, "050471"),
        (1234567890, "005924"),
        (2000000000, "279037"),
    ])
    def test_rfc6238_vectors(self, for_time, expected):
        """Six-digit truncation of the RFC 6238 SHA-1 test vectors."""
        assert totp.current_code(RFC_SECRET, for_time) == expected

    def test_accepts_datetime(self):
        when = datetime.fromtimestamp(1234567890, tz=timezone.utc)
        assert totp.current_code(RFC_SECRET, when) == "005924"

    def test_same_step_same_code(self):
        assert totp.current_code(RFC_SECRET, T0) == totp.current_code(RFC_SECRET, T0 + 29)

    def test_now_is_six_digits(self):
        code = totp.current_code(totp.generate_secret())
        assert len(code) == 6
        assert code.isdigit()


class TestValidateCode:
    """Test code validation with skew tolerance."""

    def test_current_step_valid(self):
        code = totp.current_code(RFC_SECRET, T0)
        assert totp.validate_code(RFC_SECRET, code, T0)

    @pytest.mark.parametrize("offset", [-30, -1, 29, 30, 59])
    def test_adjacent_steps_valid(self, offset):
        """Codes from one step before or after are accepted."""
        code = totp.current_code(RFC_SECRET, T0)
        assert totp.validate_code(RFC_SECRET, code, T0 + offset)

    @pytest.mark.parametrize("offset", [-31, 60, 120])
    def test_two_steps_away_rejected(self, offset):
        code = totp.current_code(RFC_SECRET, T0)
        assert not totp.validate_code(RFC_SECRET, code, T0 + offset)

    def test_code_for_other_secret_rejected(self):
        other = totp.generate_secret()
        code = totp.current_code(other, T0)
        if code == totp.current_code(RFC_SECRET, T0):
            pytest.skip("1 in a million collision")
        assert not totp.validate_code(RFC_SECRET, code, T0)

    def test_surrounding_whitespace_ignored(self):
        code = totp.current_code(RFC_SECRET, T0)
        assert totp.validate_code(RFC_SECRET, f" {code}\n", T0)

    @pytest.mark.parametrize("code", [
        None,
        "",
        "12345",
        "1234567",
        "12a456",
        "12 456",
        "-12345",
        "１２３４５６",  # full-width digits
        123456,
    ])
    def test_malformed_code_is_false(self, code):
        assert totp.validate_code(RFC_SECRET, code, T0) is False

    @pytest.mark.parametrize("secret", [None, "", "not base32 !!", "1111"])
    def test_bad_secret_is_false(self, secret):
        assert totp.validate_code(secret, "123456", T0) is False


@pytest.fixture
def new_york_tz():
    """Run with a local time zone that has a DST fold."""
    if not hasattr(time, "tzset"):
        pytest.skip("time.tzset not available")
    saved = os.environ.get("TZ")
    os.environ["TZ"] = "America/New_York"
    time.tzset()
    yield
    if saved is None:
        os.environ.pop("TZ", None)
    else:
        os.environ["TZ"] = saved
    time.tzset()


class TestLocalTimezone:
    """Codes depend on Unix time only, never on the host time zone."""

    # 2023-11-05 01:30 EST, inside the repeated hour after DST ends
    FOLD_TIME = 1699165800

    def test_code_in_repeated_hour(self, new_york_tz):
        expected = pyotp.TOTP(RFC_SECRET).generate_otp(self.FOLD_TIME // 30)
        assert totp.current_code(RFC_SECRET, self.FOLD_TIME) == expected

    def test_validate_in_repeated_hour(self, new_york_tz):
        code = pyotp.TOTP(RFC_SECRET).generate_otp(self.FOLD_TIME // 30)
        assert totp.validate_code(RFC_SECRET, code, self.FOLD_TIME)

    def test_rfc_vector_unaffected(self, new_york_tz):
        assert totp.current_code(RFC_SECRET, 1234567890) == "005924"


class TestSecretGeneration:
    """Test secret and provisioning material."""

    def test_secret_is_base32_with_enough_entropy(self):
        secret = totp.generate_secret()
        assert len(secret) == 32
        decoded = base64.b32decode(secret)
        assert len(decoded) * 8 >= 80

    def test_secrets_are_unique(self):
        assert len({totp.generate_secret() for _ in range(20)}) == 20

    def test_provisioning_uri(self):
        uri = totp.provisioning_uri(RFC_SECRET, "alice", issuer="totpgate")
        assert uri.startswith("otpauth://totp/")
        assert f"secret={RFC_SECRET}" in uri
        assert "issuer=totpgate" in uri
        assert "alice" in uri

    def test_qr_code_is_png(self):
        png = totp.generate_qr_code("otpauth://totp/x?secret=" + RFC_SECRET)
        assert png.startswith(b"\x89PNG")

    def test_setup_totp(self):
        provisioning = totp.setup_totp("alice", issuer="totpgate")
        assert provisioning.secret in provisioning.provisioning_uri
        assert provisioning.qr_code_base64.startswith("data:image/png;base64,")
