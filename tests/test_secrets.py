"""
Tests for secret loading helpers.
"""
import pytest

from totpgate.utils import secrets as secrets_module
from totpgate.utils.secrets import get_required_secret, get_secret, mask_secret


@pytest.fixture(autouse=True)
def empty_secrets_dir(tmp_path, monkeypatch):
    """Point the Docker secrets directory somewhere empty."""
    docker_dir = tmp_path / "run-secrets"
    docker_dir.mkdir()
    monkeypatch.setattr(secrets_module, "DOCKER_SECRETS_DIR", str(docker_dir))
    monkeypatch.delenv("TOTPGATE_TEST_SECRET", raising=False)
    monkeypatch.delenv("TOTPGATE_TEST_SECRET_FILE", raising=False)
    return docker_dir


class TestGetSecret:
    """Test lookup priority."""

    def test_default_when_missing(self):
        assert get_secret("TOTPGATE_TEST_SECRET") is None
        assert get_secret("TOTPGATE_TEST_SECRET", "fallback") == "fallback"

    def test_env_value(self, monkeypatch):
        monkeypatch.setenv("TOTPGATE_TEST_SECRET", "from-env")
        assert get_secret("TOTPGATE_TEST_SECRET") == "from-env"

    def test_file_wins_over_env(self, tmp_path, monkeypatch):
        secret_file = tmp_path / "secret.txt"
        secret_file.write_text("from-file\n")
        monkeypatch.setenv("TOTPGATE_TEST_SECRET_FILE", str(secret_file))
        monkeypatch.setenv("TOTPGATE_TEST_SECRET", "from-env")

        assert get_secret("TOTPGATE_TEST_SECRET") == "from-file"

    def test_missing_file_falls_through(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TOTPGATE_TEST_SECRET_FILE", str(tmp_path / "nope"))
        monkeypatch.setenv("TOTPGATE_TEST_SECRET", "from-env")

        assert get_secret("TOTPGATE_TEST_SECRET") == "from-env"

    def test_docker_secret(self, empty_secrets_dir):
        (empty_secrets_dir / "totpgate_test_secret").write_text("from-docker")
        assert get_secret("TOTPGATE_TEST_SECRET") == "from-docker"


class TestRequiredSecret:
    def test_raises_when_missing(self):
        with pytest.raises(ValueError, match="TOTPGATE_TEST_SECRET"):
            get_required_secret("TOTPGATE_TEST_SECRET")

    def test_returns_value(self, monkeypatch):
        monkeypatch.setenv("TOTPGATE_TEST_SECRET", "value")
        assert get_required_secret("TOTPGATE_TEST_SECRET") == "value"


class TestMaskSecret:
    def test_masks_middle(self):
        assert mask_secret("abcdefghijkl") == "abcd...ijkl"

    def test_short_secret_fully_masked(self):
        assert mask_secret("short") == "***"
        assert mask_secret("") == "***"
