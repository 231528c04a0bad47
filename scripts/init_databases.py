#!/usr/bin/env python3
"""
Initialize the totpgate database schema.

Run this after first setup (the API also creates the schema on startup):

    python scripts/init_databases.py

    # Also create an account (password is prompted for)
    python scripts/init_databases.py --user alice

Connection settings come from DATABASE_URL or the POSTGRES_* variables.
"""
import sys
import getpass
import logging
import argparse

from totpgate.database.auth_db import AuthDB, hash_password

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Initialize the totpgate database")
    parser.add_argument("--user", help="Create this user after initializing the schema")
    args = parser.parse_args()

    try:
        db = AuthDB()
        db.init_schema()
    except Exception as e:
        logger.error(f"Schema initialization failed: {e}")
        return 1
    logger.info("Tables ready: users, sessions")

    if args.user:
        password = getpass.getpass(f"Password for {args.user}: ")
        if not password:
            logger.error("Empty password, user not created")
            return 1
        try:
            db.create_user(args.user, hash_password(password))
        except ValueError as e:
            logger.error(str(e))
            return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
