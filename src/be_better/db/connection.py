"""SQLite connection primitives for the DB layer.

Owns connection creation and SQLite pragmas so repository code stays focused
on queries and transaction intent.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path


def get_db_path() -> Path:
    """Resolve the absolute SQLite database path from runtime configuration."""
    from be_better.config import config

    return config.database.absolute_path


def configure_connection(connection: sqlite3.Connection) -> sqlite3.Connection:
    """Apply connection-level settings.

    Notes:
        - Rows come back as ``sqlite3.Row`` so repositories can build dicts.
        - ``foreign_keys=ON`` because SQLite does not enforce them by default.
        - ``busy_timeout`` lets concurrent writers wait for the write lock
          instead of failing immediately.
    """
    connection.row_factory = sqlite3.Row
    connection.execute("PRAGMA foreign_keys = ON")
    connection.execute("PRAGMA busy_timeout = 5000")
    return connection


def get_connection() -> sqlite3.Connection:
    """Create and configure a new SQLite connection."""
    path = get_db_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    # Explicit transactions only: write scopes issue BEGIN themselves
    connection = sqlite3.connect(str(path), isolation_level=None)
    return configure_connection(connection)


@contextmanager
def connection_scope(*, write: bool = False) -> Iterator[sqlite3.Connection]:
    """Yield a configured connection with guaranteed cleanup.

    Args:
        write: Run the block in a ``BEGIN IMMEDIATE`` transaction, committed on
            success and rolled back on exceptions. IMMEDIATE takes the write
            lock up front, so a read-modify-write inside the block cannot
            interleave with another writer.

    Yields:
        Configured SQLite connection.
    """
    connection = get_connection()
    try:
        if write:
            connection.execute("BEGIN IMMEDIATE")
        yield connection
        if write:
            connection.execute("COMMIT")
    except Exception:
        if write and connection.in_transaction:
            try:
                connection.execute("ROLLBACK")
            except sqlite3.Error:
                # Preserve the original exception while best-effort rolling back.
                pass
        raise
    finally:
        connection.close()
