"""
Client composition root.

Builds the storage, ledger, API client and sync bridge for one session and
wires them together. Nothing in the client reaches for a global ledger:
whoever holds a ``LedgerApp`` holds the only handles.

    async with open_app() as app:
        app.ledger.toggle_task("task-exercise")
    # leaving the block waits for pending syncs and closes the HTTP client
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from be_better.client.api_client import RemoteLedgerClient, TokenStore
from be_better.client.ledger import LocalLedger
from be_better.client.storage import JsonFileStorage, Storage
from be_better.client.sync import SyncBridge
from be_better.config import ClientSettings

logger = logging.getLogger(__name__)


@dataclass
class LedgerApp:
    """Handles to the wired-up client components."""

    ledger: LocalLedger
    tokens: TokenStore
    client: RemoteLedgerClient
    bridge: SyncBridge


@asynccontextmanager
async def open_app(
    settings: ClientSettings | None = None, storage: Storage | None = None
) -> AsyncIterator[LedgerApp]:
    """
    Open a client session.

    Args:
        settings: Client settings; defaults to ``config.client``.
        storage: Durable storage; defaults to a JSON file at
            ``settings.state_path``.

    Yields:
        A LedgerApp whose bridge is already attached to the ledger.
    """
    if settings is None:
        from be_better.config import config

        settings = config.client
    if storage is None:
        storage = JsonFileStorage(settings.absolute_state_path)

    ledger = LocalLedger(storage)
    tokens = TokenStore(storage)

    async with RemoteLedgerClient(settings, tokens) as client:
        bridge = SyncBridge(
            ledger,
            client,
            retries=settings.sync_retries,
            backoff_seconds=settings.retry_backoff_seconds,
        )
        bridge.attach()
        logger.debug("Client session opened (logged in: %s)", tokens.is_authenticated)
        try:
            yield LedgerApp(ledger=ledger, tokens=tokens, client=client, bridge=bridge)
        finally:
            await bridge.drain()
            bridge.detach()
