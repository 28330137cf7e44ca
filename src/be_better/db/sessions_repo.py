"""Session token persistence for the SQLite backend.

A session maps an opaque bearer token to a user id. Tokens expire after
``config.session.ttl_minutes`` (0 means never); expired rows are treated as
missing and removed by ``cleanup_expired_sessions``, which the API runs on
startup and on every login.
"""

from __future__ import annotations

from be_better.db.connection import connection_scope
from be_better.db.errors import raise_read_error, raise_write_error


def create_session(user_id: str, token: str) -> bool:
    """Store a new session token for ``user_id``."""
    from be_better.config import config

    ttl = config.session.ttl_minutes
    try:
        with connection_scope(write=True) as conn:
            if ttl > 0:
                conn.execute(
                    """
                    INSERT INTO sessions (token, user_id, created_at, expires_at)
                    VALUES (?, ?, CURRENT_TIMESTAMP, datetime('now', ?))
                    """,
                    (token, user_id, f"+{ttl} minutes"),
                )
            else:
                conn.execute(
                    """
                    INSERT INTO sessions (token, user_id, created_at, expires_at)
                    VALUES (?, ?, CURRENT_TIMESTAMP, NULL)
                    """,
                    (token, user_id),
                )
        return True
    except Exception as exc:
        raise_write_error("sessions.create_session", exc, details=f"user_id={user_id!r}")


def get_user_id_for_token(token: str) -> str | None:
    """Return the user id owning ``token`` unless the token is unknown or expired."""
    try:
        with connection_scope() as conn:
            row = conn.execute(
                """
                SELECT user_id FROM sessions
                WHERE token = ?
                  AND (expires_at IS NULL OR expires_at > datetime('now'))
                """,
                (token,),
            ).fetchone()
        return str(row["user_id"]) if row else None
    except Exception as exc:
        raise_read_error("sessions.get_user_id_for_token", exc)


def remove_session(token: str) -> bool:
    """Delete one session. Returns False if the token was unknown."""
    try:
        with connection_scope(write=True) as conn:
            cursor = conn.execute("DELETE FROM sessions WHERE token = ?", (token,))
            return int(cursor.rowcount or 0) > 0
    except Exception as exc:
        raise_write_error("sessions.remove_session", exc)


def cleanup_expired_sessions() -> int:
    """Delete expired sessions and return how many were removed."""
    try:
        with connection_scope(write=True) as conn:
            cursor = conn.execute(
                "DELETE FROM sessions WHERE expires_at IS NOT NULL AND expires_at <= datetime('now')"
            )
            return int(cursor.rowcount or 0)
    except Exception as exc:
        raise_write_error("sessions.cleanup_expired_sessions", exc)
