"""
totpgate REST API.

FastAPI-based REST API for login and TOTP management.
"""
from .main import app, create_app

__all__ = ["app", "create_app"]
