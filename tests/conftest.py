"""
Shared pytest fixtures for the Be Better test suite.

This module provides fixtures that are automatically available to all test files:
- Temporary SQLite databases wired in through ``use_test_database``
- FastAPI TestClient instances
- Registered accounts and bearer tokens
- Local ledgers on in-memory storage
- Client settings pointing at a respx-mocked server

bcrypt runs at its minimum cost factor for the whole suite.
"""

import shutil
import tempfile
from collections.abc import AsyncGenerator, Generator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from be_better.api import password
from be_better.client.api_client import RemoteLedgerClient, TokenStore
from be_better.client.ledger import LocalLedger
from be_better.client.storage import MemoryStorage
from be_better.config import ClientSettings, use_test_database
from be_better.db import schema, sessions_repo, users_repo

# Import shared test constants
from tests.constants import TEST_PASSWORD, TEST_SERVER_URL

# ============================================================================
# GLOBAL SETTINGS
# ============================================================================


@pytest.fixture(autouse=True)
def fast_bcrypt(monkeypatch):
    """Hash passwords at bcrypt's minimum cost so account tests stay fast."""
    monkeypatch.setattr(password, "BCRYPT_ROUNDS", 4)


# ============================================================================
# DATABASE FIXTURES
# ============================================================================


@pytest.fixture(scope="function")
def temp_db_path() -> Generator[Path, None, None]:
    """
    Create a temporary database file for testing.

    Each test function gets its own database through the config system's
    ``use_test_database`` context manager.

    Yields:
        Path to temporary database file
    """
    temp_dir = tempfile.mkdtemp()
    temp_db = Path(temp_dir) / "test_be_better.db"

    with use_test_database(temp_db):
        yield temp_db

    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture(scope="function")
def test_db(temp_db_path: Path) -> Generator[None, None, None]:
    """Initialize a test database with schema but no accounts."""
    schema.init_database()
    yield


@pytest.fixture(scope="function")
def registered_user(test_db) -> dict[str, str]:
    """
    Create one account.

    Returns:
        Dict with ``id``, ``username`` and ``password``
    """
    user_id = users_repo.create_user("alice", TEST_PASSWORD, email="alice@example.com")
    assert user_id is not None
    return {"id": user_id, "username": "alice", "password": TEST_PASSWORD}


@pytest.fixture(scope="function")
def auth_token(registered_user) -> str:
    """A live session token for ``registered_user``."""
    token = "test-token-alice"
    sessions_repo.create_session(registered_user["id"], token)
    return token


@pytest.fixture(scope="function")
def auth_headers(auth_token: str) -> dict[str, str]:
    """Authorization header for ``registered_user``."""
    return {"Authorization": f"Bearer {auth_token}"}


# ============================================================================
# API FIXTURES
# ============================================================================


@pytest.fixture(scope="function")
def test_client(test_db) -> Generator[TestClient, None, None]:
    """
    FastAPI TestClient backed by the temporary database.

    Entering the client runs the app's startup hook (schema creation).
    """
    from be_better.api.server import create_app

    with TestClient(create_app()) as client:
        yield client


# ============================================================================
# CLIENT FIXTURES
# ============================================================================


@pytest.fixture
def storage() -> MemoryStorage:
    """Empty in-memory client storage."""
    return MemoryStorage()


@pytest.fixture
def ledger(storage: MemoryStorage) -> LocalLedger:
    """A fresh local ledger (xp 0, coins 50)."""
    return LocalLedger(storage)


@pytest.fixture
def tokens(storage: MemoryStorage) -> TokenStore:
    """Token store sharing the ledger's storage. Starts logged out."""
    return TokenStore(storage)


@pytest.fixture
def client_settings(tmp_path: Path) -> ClientSettings:
    """Client settings pointing at the mocked test server."""
    return ClientSettings(
        server_url=TEST_SERVER_URL,
        timeout_seconds=10.0,
        state_path=str(tmp_path / "state.json"),
        sync_retries=0,
        retry_backoff_seconds=0.0,
    )


@pytest.fixture
async def api_client(
    client_settings: ClientSettings, tokens: TokenStore
) -> AsyncGenerator[RemoteLedgerClient, None]:
    """An entered RemoteLedgerClient. Mock requests with respx."""
    async with RemoteLedgerClient(client_settings, tokens) as client:
        yield client
