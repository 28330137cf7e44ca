"""User account and remote-ledger operations for the SQLite backend.

Each account row carries the user's persisted totals (xp, coins, level).
Totals only ever change through ``apply_deltas``, which increments and
recomputes the level inside one ``BEGIN IMMEDIATE`` transaction so two
concurrent modify requests for the same user cannot lose an update.
"""

from __future__ import annotations

import sqlite3
import uuid
from datetime import UTC, datetime
from typing import Any

from be_better.core.rewards import STARTING_COINS, level_for_xp
from be_better.db.connection import connection_scope
from be_better.db.errors import raise_read_error, raise_write_error

# Columns returned to clients. password_hash never leaves this module.
PUBLIC_COLUMNS = "id, username, email, xp, coins, level, created_at"

# bcrypt hash of a random string, checked against when the username is
# unknown so both failure paths cost the same.
_DUMMY_HASH = "$2b$12$LQv3c1yqBWVHxkd0LHAkCOYz6TtxMQJqhN8/X4.G5j1L3tDPZ3q4q"  # nosec B105


class NegativeTotalError(ValueError):
    """A delta would take xp or coins below zero."""

    def __init__(self, field_name: str, current: int, delta: int) -> None:
        super().__init__(f"{field_name} would become negative ({current} + {delta})")
        self.field_name = field_name
        self.current = current
        self.delta = delta


def create_user(username: str, password: str, *, email: str | None = None) -> str | None:
    """Create an account with a fresh ledger.

    Args:
        username: Unique account username.
        password: Plain text password (hashed before persistence).
        email: Optional contact email.

    Returns:
        The new user id, or ``None`` when the username is taken.
    """
    from be_better.api.password import hash_password

    user_id = uuid.uuid4().hex
    created_at = datetime.now(UTC).isoformat()
    try:
        password_hash = hash_password(password)
        with connection_scope(write=True) as conn:
            conn.execute(
                """
                INSERT INTO users (id, username, email, password_hash, xp, coins, level, created_at)
                VALUES (?, ?, ?, ?, 0, ?, 1, ?)
                """,
                (user_id, username, email or None, password_hash, STARTING_COINS, created_at),
            )
        return user_id
    except sqlite3.IntegrityError:
        return None
    except Exception as exc:
        raise_write_error("users.create_user", exc, details=f"username={username!r}")


def user_exists(username: str) -> bool:
    """Return ``True`` when a user account exists."""
    try:
        with connection_scope() as conn:
            row = conn.execute("SELECT id FROM users WHERE username = ?", (username,)).fetchone()
        return row is not None
    except Exception as exc:
        raise_read_error("users.user_exists", exc, details=f"username={username!r}")


def verify_credentials(username: str, password: str) -> str | None:
    """Check a username/password pair.

    Returns:
        The user id on success, ``None`` on unknown user or wrong password.
    """
    from be_better.api.password import verify_password

    try:
        with connection_scope() as conn:
            row = conn.execute(
                "SELECT id, password_hash FROM users WHERE username = ?", (username,)
            ).fetchone()
    except Exception as exc:
        raise_read_error("users.verify_credentials", exc, details=f"username={username!r}")

    if row is None:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, row["password_hash"]):
        return None
    return str(row["id"])


def get_user(user_id: str) -> dict[str, Any] | None:
    """Return the public record for ``user_id`` or ``None`` if missing."""
    try:
        with connection_scope() as conn:
            row = conn.execute(
                f"SELECT {PUBLIC_COLUMNS} FROM users WHERE id = ?", (user_id,)
            ).fetchone()
        return dict(row) if row else None
    except Exception as exc:
        raise_read_error("users.get_user", exc, details=f"user_id={user_id!r}")


def apply_deltas(user_id: str, *, xp_delta: int = 0, coins_delta: int = 0) -> dict[str, Any] | None:
    """Add signed deltas to a user's totals and recompute the level.

    Read, check, write and re-read all happen in one write transaction.

    Returns:
        The updated public record, or ``None`` if the user does not exist.

    Raises:
        NegativeTotalError: If the result would make xp or coins negative.
            Nothing is written in that case.
    """
    try:
        with connection_scope(write=True) as conn:
            row = conn.execute("SELECT xp, coins FROM users WHERE id = ?", (user_id,)).fetchone()
            if row is None:
                return None

            new_xp = row["xp"] + xp_delta
            new_coins = row["coins"] + coins_delta
            if new_xp < 0:
                raise NegativeTotalError("xp", row["xp"], xp_delta)
            if new_coins < 0:
                raise NegativeTotalError("coins", row["coins"], coins_delta)

            conn.execute(
                "UPDATE users SET xp = ?, coins = ?, level = ? WHERE id = ?",
                (new_xp, new_coins, level_for_xp(new_xp), user_id),
            )
            updated = conn.execute(
                f"SELECT {PUBLIC_COLUMNS} FROM users WHERE id = ?", (user_id,)
            ).fetchone()
        return dict(updated)
    except NegativeTotalError:
        raise
    except Exception as exc:
        raise_write_error(
            "users.apply_deltas",
            exc,
            details=f"user_id={user_id!r}, xp_delta={xp_delta}, coins_delta={coins_delta}",
        )
