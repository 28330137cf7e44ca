"""Schema creation for the SQLite backend.

Two tables: ``users`` holds the remote ledger (one row per account) and
``sessions`` holds bearer tokens issued at login. ``init_database`` is
idempotent and is called on server start-up and by ``be-better init-db``.
"""

from __future__ import annotations

import logging

from be_better.core.rewards import STARTING_COINS
from be_better.db.connection import connection_scope

logger = logging.getLogger(__name__)

SCHEMA_STATEMENTS = (
    f"""
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        username TEXT UNIQUE NOT NULL,
        email TEXT,
        password_hash TEXT NOT NULL,
        xp INTEGER NOT NULL DEFAULT 0 CHECK (xp >= 0),
        coins INTEGER NOT NULL DEFAULT {STARTING_COINS} CHECK (coins >= 0),
        level INTEGER NOT NULL DEFAULT 1 CHECK (level >= 1),
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS sessions (
        token TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        expires_at TIMESTAMP,
        FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_sessions_user_id ON sessions(user_id)",
)


def init_database() -> None:
    """Create all tables and indexes if they do not exist yet."""
    with connection_scope(write=True) as conn:
        for statement in SCHEMA_STATEMENTS:
            conn.execute(statement)
    logger.info("Database schema ready")
