"""
totpgate - password login with optional TOTP second factor.

This package provides the authentication core (TOTP engine, per-user
second-factor state, login and enrolment service), SQL and in-memory
storage backends, and a FastAPI application exposing them.
"""

__version__ = "0.1.0"
__author__ = "totpgate Team"
