"""
Shared utilities for totpgate.

This package provides:
- Secrets lookup (environment, *_FILE, Docker secrets)
- Secret masking for logs
"""
from .secrets import get_secret, get_required_secret, mask_secret

__all__ = ["get_secret", "get_required_secret", "mask_secret"]
