"""bcrypt password hashing."""

from __future__ import annotations

import bcrypt

# Cost factor for new hashes.
BCRYPT_ROUNDS = 12


def hash_password(password: str) -> str:
    """Hash a plain text password with a fresh salt."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode(
        "utf-8"
    )


def verify_password(password: str, password_hash: str) -> bool:
    """Return True if ``password`` matches ``password_hash``. Malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False
