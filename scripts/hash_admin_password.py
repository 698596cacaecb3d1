#!/usr/bin/env python3
"""CLI script to produce the bcrypt hash for ADMIN_PASSWORD_HASH.

Usage:
    uv run python scripts/hash_admin_password.py
    uv run python scripts/hash_admin_password.py --password changeme

Prompts for the password when --password is omitted. Paste the printed
hash into the environment or .env file.
"""

from __future__ import annotations

import argparse
import getpass
import os
import sys

# Ensure project root is on sys.path so we can import src.app
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))


def main() -> None:
    parser = argparse.ArgumentParser(description="Hash the admin password with bcrypt")
    parser.add_argument("--password", help="Plaintext password (prompted if omitted)")
    args = parser.parse_args()

    password = args.password
    if not password:
        password = getpass.getpass("Admin password: ")
        if password != getpass.getpass("Repeat password: "):
            print("Passwords do not match", file=sys.stderr)
            sys.exit(1)
    if len(password) < 8:
        print("Password must be at least 8 characters", file=sys.stderr)
        sys.exit(1)

    from src.app.core.security import hash_password

    print(f"ADMIN_PASSWORD_HASH={hash_password(password)}")


if __name__ == "__main__":
    main()
