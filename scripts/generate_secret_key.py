#!/usr/bin/env python3
"""
Create or rotate the JWT_SECRET_KEY used to sign API session tokens.

Usage:
  python scripts/generate_secret_key.py           print a new key
  python scripts/generate_secret_key.py --write   store it in ./.env
Rotating the key invalidates every token already issued.
"""

import secrets
import sys

from dotenv import find_dotenv, set_key

ENV_NAME = "JWT_SECRET_KEY"


def new_secret(nbytes=32):
    return secrets.token_hex(nbytes)


def write_secret(secret, env_path=None):
    """Store the secret in a .env file (created if missing); return its path."""
    path = env_path or find_dotenv(usecwd=True) or ".env"
    open(path, "a").close()
    set_key(path, ENV_NAME, secret)
    return path


if __name__ == "__main__":
    secret = new_secret()

    if "--write" in sys.argv[1:]:
        path = write_secret(secret)
        print(f"[init] {ENV_NAME} written to {path}")
        print("[init] Restart the API server; existing sessions must log in again.")
    else:
        print(f"{ENV_NAME}={secret}")
        print("\nAdd the line above to .env, or rerun with --write.")
