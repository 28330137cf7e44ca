"""
Sync bridge: keeps the local ledger and the remote ledger in step.

The client is the source of truth for user actions, the server for
persisted totals. The bridge forwards each local change to the server as a
*delta* and writes the server's absolute totals back into the ledger. A
modify response only overwrites the field its request carried, so answers
arriving out of order cannot restore a stale total.

=============================================================================
STATE MACHINE
=============================================================================

    IDLE ──(xp/coins change, logged in)──▶ SYNCING
    SYNCING ──(response received)──▶ APPLYING_REMOTE
    APPLYING_REMOTE ──(ledger overwritten)──▶ SYNCING | IDLE

    - IDLE: nothing in flight.
    - SYNCING: at least one modify request in flight. New local changes are
      still forwarded; each carries its own delta.
    - APPLYING_REMOTE: the bridge is writing server totals into the ledger.
      The ledger re-emits xp/coins events with delta=0 during this step and
      the bridge ignores every event it receives while in this state. This
      guard is what stops a server overwrite from being synced back
      forever.

Failures never roll back local state: a failed request is logged and the
optimistic local value stands until the next successful response
overwrites it. A 401 discards the stored token and the client carries on
locally.

Timeouts come from the API client settings. Transient failures (unreachable
server, 5xx) are retried ``retries`` times with exponential backoff;
``retries=0`` disables retrying.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any

from be_better.client.api_client import APIError, AuthenticationError, RemoteLedgerClient
from be_better.client.ledger import LocalLedger
from be_better.core.bus import LedgerEvent, Unsubscribe
from be_better.core.events import Events

logger = logging.getLogger(__name__)

_DELTA_FIELDS = {"xp_delta": "xp", "coins_delta": "coins"}


class SyncState(Enum):
    """States of the sync bridge."""

    IDLE = "idle"
    SYNCING = "syncing"
    APPLYING_REMOTE = "applying_remote"


class SyncBridge:
    """
    Forwards ledger deltas to the server and applies the confirmed totals.

    Args:
        ledger: The local ledger to watch and update.
        client: An entered RemoteLedgerClient.
        retries: Extra attempts for transient failures.
        backoff_seconds: Delay before the first retry; doubles each attempt.

    Example:
        async with RemoteLedgerClient(settings, tokens) as client:
            bridge = SyncBridge(ledger, client)
            bridge.attach()
            ledger.toggle_task("task-journal")
            await bridge.drain()
    """

    def __init__(
        self,
        ledger: LocalLedger,
        client: RemoteLedgerClient,
        *,
        retries: int = 0,
        backoff_seconds: float = 0.5,
    ) -> None:
        self.ledger = ledger
        self.client = client
        self.retries = max(0, retries)
        self.backoff_seconds = backoff_seconds
        self._state = SyncState.IDLE
        self._in_flight: set[asyncio.Task[None]] = set()
        self._unsubscribers: list[Unsubscribe] = []

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def in_flight(self) -> int:
        """Number of modify requests currently awaiting a response."""
        return len(self._in_flight)

    # =========================================================================
    # SUBSCRIPTION
    # =========================================================================

    def attach(self) -> None:
        """Start listening to the ledger. Attaching twice is a no-op."""
        if self._unsubscribers:
            return
        self._unsubscribers = [
            self.ledger.on(Events.XP_CHANGED, self._on_xp_changed),
            self.ledger.on(Events.COINS_CHANGED, self._on_coins_changed),
        ]

    def detach(self) -> None:
        """Stop listening. Requests already in flight still complete."""
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    def _on_xp_changed(self, event: LedgerEvent) -> None:
        self._forward("xp_delta", int(event.detail.get("delta", 0)))

    def _on_coins_changed(self, event: LedgerEvent) -> None:
        self._forward("coins_delta", int(event.detail.get("delta", 0)))

    # =========================================================================
    # OUTBOUND
    # =========================================================================

    def _forward(self, field_name: str, delta: int) -> None:
        """Dispatch one delta to the server without waiting for the answer."""
        if self._state is SyncState.APPLYING_REMOTE:
            logger.debug("Ignoring %s=%d: applying remote totals", field_name, delta)
            return
        if delta == 0:
            return
        if not self.client.is_authenticated:
            logger.debug("Not logged in, keeping %s=%d local", field_name, delta)
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop, keeping %s=%d local", field_name, delta)
            return

        task = loop.create_task(self._push({field_name: delta}))
        self._in_flight.add(task)
        self._state = SyncState.SYNCING
        task.add_done_callback(self._on_push_done)
        logger.debug("Sending /user/modify %s=%d", field_name, delta)

    def _on_push_done(self, task: asyncio.Task[None]) -> None:
        self._in_flight.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Sync task crashed", exc_info=task.exception())
        if not self._in_flight and self._state is SyncState.SYNCING:
            self._state = SyncState.IDLE

    async def _push(self, delta: dict[str, int]) -> None:
        try:
            user = await self._modify_with_retry(delta)
        except AuthenticationError as e:
            logger.info("Session rejected, continuing locally: %s", e)
            self.client.tokens.clear()
            return
        except APIError as e:
            logger.warning("Sync of %s failed, keeping local state: %s", delta, e)
            return
        # Concurrent requests can answer out of order; each owns only its field
        self._apply(user, fields={_DELTA_FIELDS[name] for name in delta})

    async def _modify_with_retry(self, delta: dict[str, int]) -> dict[str, Any]:
        attempt = 0
        while True:
            try:
                return await self.client.modify(**delta)
            except AuthenticationError:
                raise
            except APIError as e:
                if not e.is_transient or attempt >= self.retries:
                    raise
                delay = self.backoff_seconds * (2**attempt)
                attempt += 1
                logger.info(
                    "Sync attempt %d failed (%s), retrying in %.2fs", attempt, e, delay
                )
                await asyncio.sleep(delay)

    # =========================================================================
    # INBOUND
    # =========================================================================

    def _apply(self, user: dict[str, Any], fields: set[str] | None = None) -> bool:
        """
        Overwrite the ledger with server totals under the APPLYING_REMOTE guard.

        ``fields`` limits the overwrite to ``"xp"`` and/or ``"coins"``; None
        writes both.
        """
        fields = {"xp", "coins"} if fields is None else fields
        try:
            xp = int(user["xp"]) if "xp" in fields else None
            coins = int(user["coins"]) if "coins" in fields else None
            level = int(user["level"]) if user.get("level") is not None else None
        except (KeyError, TypeError, ValueError):
            logger.warning("Server returned an unusable user record: %r", user)
            return False
        if (xp is not None and xp < 0) or (coins is not None and coins < 0):
            logger.warning("Server returned negative totals: xp=%s coins=%s", xp, coins)
            return False

        self._state = SyncState.APPLYING_REMOTE
        try:
            self.ledger.apply_remote(xp=xp, coins=coins, level=level)
        finally:
            self._state = SyncState.SYNCING if self._in_flight else SyncState.IDLE
        return True

    async def pull(self) -> dict[str, Any] | None:
        """
        Replace local totals with the server's, e.g. right after login.

        Returns:
            The server user record, or None when logged out or unreachable.
        """
        if not self.client.is_authenticated:
            return None
        try:
            user = await self.client.get_user()
        except AuthenticationError as e:
            logger.info("Session rejected, continuing locally: %s", e)
            self.client.tokens.clear()
            return None
        except APIError as e:
            logger.warning("Could not fetch user from server: %s", e)
            return None
        if not self._apply(user):
            return None
        return user

    async def drain(self) -> None:
        """Wait until every in-flight request has been handled."""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)
