"""
Secrets management utilities for totpgate.

Supports multiple secret sources:
1. {NAME}_FILE environment variable pointing at a file (Docker/Kubernetes secrets)
2. {NAME} environment variable (development)
3. /run/secrets/{name} (Docker secrets default path)

Usage:
    from totpgate.utils.secrets import get_secret

    database_url = get_secret("DATABASE_URL")
"""
import os
import logging
from typing import Optional

logger = logging.getLogger(__name__)

DOCKER_SECRETS_DIR = "/run/secrets"


def _read_secret_file(path: str, name: str) -> Optional[str]:
    try:
        with open(path, 'r') as f:
            return f.read().strip()
    except OSError as e:
        logger.warning(f"Failed to read secret file for {name}: {e}")
        return None


def get_secret(name: str, default: Optional[str] = None) -> Optional[str]:
    """
    Get a secret value from various sources.

    Priority:
    1. {NAME}_FILE environment variable (path to file containing secret)
    2. {NAME} environment variable (direct value)
    3. /run/secrets/{name.lower()} file
    4. Default value

    Args:
        name: Secret name (e.g., "POSTGRES_PASSWORD")
        default: Default value if secret not found

    Returns:
        Secret value or default
    """
    file_path = os.environ.get(f"{name}_FILE")
    if file_path and os.path.isfile(file_path):
        secret = _read_secret_file(file_path, name)
        if secret is not None:
            logger.debug(f"Loaded secret {name} from file")
            return secret

    env_value = os.environ.get(name)
    if env_value:
        logger.debug(f"Loaded secret {name} from environment")
        return env_value

    docker_secret_path = os.path.join(DOCKER_SECRETS_DIR, name.lower())
    if os.path.isfile(docker_secret_path):
        secret = _read_secret_file(docker_secret_path, name)
        if secret is not None:
            logger.debug(f"Loaded secret {name} from Docker secrets")
            return secret

    return default


def get_required_secret(name: str) -> str:
    """
    Get a required secret, raising an error if not found.

    Raises:
        ValueError: If secret not found
    """
    value = get_secret(name)
    if value is None:
        raise ValueError(
            f"Required secret '{name}' not found. "
            f"Set {name} or {name}_FILE environment variable."
        )
    return value


def mask_secret(secret: str, visible_chars: int = 4) -> str:
    """
    Mask a secret for safe logging.

    Args:
        secret: The secret to mask
        visible_chars: Number of characters to show at start and end

    Returns:
        Masked string like "abc...xyz"
    """
    if not secret or len(secret) <= visible_chars * 2:
        return "***"
    return f"{secret[:visible_chars]}...{secret[-visible_chars:]}"
