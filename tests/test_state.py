"""
Tests for the per-user second-factor state.
"""
import pytest

from totpgate.auth.state import (
    EnabledTOTP,
    NoTOTP,
    PendingTOTP,
    UserSecurityRecord,
    state_from_columns,
    state_to_columns,
)


class TestIllegalStates:
    """Enabled-without-secret and empty secrets cannot be built."""

    def test_enabled_requires_secret(self):
        with pytest.raises(ValueError):
            EnabledTOTP("")

    def test_pending_requires_secret(self):
        with pytest.raises(ValueError):
            PendingTOTP("")

    def test_enabled_rejects_empty_pending(self):
        with pytest.raises(ValueError):
            EnabledTOTP("AAAA", pending_secret="")

    def test_corrupt_enabled_row_rejected(self):
        with pytest.raises(ValueError):
            state_from_columns(None, None, True)


class TestTransitions:
    """Test record transitions."""

    def test_new_record_has_no_totp(self):
        record = UserSecurityRecord("alice")
        assert record.totp == NoTOTP()
        assert not record.totp_enabled
        assert record.totp_secret is None
        assert record.totp_pending_secret is None
        assert record.state_name == "none"

    def test_pending_is_not_enabled(self):
        record = UserSecurityRecord("alice").with_pending("AAAA")
        assert record.totp == PendingTOTP("AAAA")
        assert not record.totp_enabled
        assert record.totp_secret is None
        assert record.totp_pending_secret == "AAAA"

    def test_regenerate_overwrites_pending(self):
        record = UserSecurityRecord("alice").with_pending("AAAA").with_pending("BBBB")
        assert record.totp == PendingTOTP("BBBB")

    def test_confirm_promotes_pending(self):
        record = UserSecurityRecord("alice").with_pending("AAAA").with_pending_confirmed()
        assert record.totp == EnabledTOTP("AAAA")
        assert record.totp_enabled
        assert record.totp_secret == "AAAA"
        assert record.totp_pending_secret is None

    def test_generate_while_enabled_keeps_secret_live(self):
        record = UserSecurityRecord("alice", totp=EnabledTOTP("AAAA")).with_pending("BBBB")
        assert record.totp_enabled
        assert record.totp_secret == "AAAA"
        assert record.totp_pending_secret == "BBBB"

        swapped = record.with_pending_confirmed()
        assert swapped.totp == EnabledTOTP("BBBB")

    def test_confirm_without_pending_raises(self):
        with pytest.raises(ValueError):
            UserSecurityRecord("alice").with_pending_confirmed()
        with pytest.raises(ValueError):
            UserSecurityRecord("alice", totp=EnabledTOTP("AAAA")).with_pending_confirmed()

    def test_clear(self):
        record = UserSecurityRecord("alice", totp=EnabledTOTP("AAAA", "BBBB"), version=3)
        cleared = record.with_totp_cleared()
        assert cleared.totp == NoTOTP()
        assert cleared.version == 3

    def test_transitions_keep_version(self):
        record = UserSecurityRecord("alice", version=7).with_pending("AAAA")
        assert record.version == 7


class TestColumns:
    """Flat column mapping used by the SQL store."""

    @pytest.mark.parametrize("state", [
        NoTOTP(),
        PendingTOTP("AAAA"),
        EnabledTOTP("AAAA"),
        EnabledTOTP("AAAA", pending_secret="BBBB"),
    ])
    def test_columns_rebuild_same_state(self, state):
        columns = state_to_columns(state)
        rebuilt = state_from_columns(
            columns["totp_secret"],
            columns["totp_pending_secret"],
            columns["totp_enabled"],
        )
        assert rebuilt == state

    def test_disabled_row_ignores_stale_secret(self):
        assert state_from_columns("AAAA", None, False) == NoTOTP()
