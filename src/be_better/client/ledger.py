"""
Local ledger: the client's copy of xp, coins, tasks and owned items.

The ledger is the source of truth for user actions. Every mutation is
persisted to durable storage first and then announced on the ledger's own
event bus, so subscribers (UI code, the sync bridge) always observe saved
state.

Failure policy:
    - Storage failures are logged and absorbed. A failed read falls back to
      the default state; a failed write keeps the in-memory state.
    - Insufficient coins is a normal outcome, reported as ``False``.
    - Negative amounts are programming errors and raise ``ValueError``.

Usage:
    ledger = LocalLedger(JsonFileStorage(path))
    ledger.on(Events.XP_CHANGED, lambda e: print(e.detail["xp"]))
    ledger.toggle_task("task-exercise")
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

from be_better.client.storage import Storage, StorageError
from be_better.core.bus import EventHandler, LedgerBus, Unsubscribe
from be_better.core.events import Events
from be_better.core.rewards import STARTING_COINS, Reward, level_for_xp, reward_for

logger = logging.getLogger(__name__)

# Storage key of the serialized ledger.
STATE_KEY = "be_better_state_v1"

# Most tasks (pending or completed) a ledger may hold at once.
MAX_ACTIVE_TASKS = 5


@dataclass
class LedgerState:
    """
    Plain ledger state.

    Attributes:
        xp: Experience points, never negative.
        coins: Coin balance, never negative.
        tasks: Task id -> completed flag. Absent means the task was never added.
        items_owned: Item id -> number owned.
        level: Cached level; recomputed from xp locally, overwritten by the
            server's value after a sync.
    """

    xp: int = 0
    coins: int = STARTING_COINS
    tasks: dict[str, bool] = field(default_factory=dict)
    items_owned: dict[str, int] = field(default_factory=dict)
    level: int = 1

    def to_dict(self) -> dict[str, Any]:
        """Serialize using the storage field names."""
        return {
            "xp": self.xp,
            "coins": self.coins,
            "tasks": dict(self.tasks),
            "itemsOwned": dict(self.items_owned),
            "level": self.level,
        }

    @classmethod
    def from_dict(cls, data: Any) -> LedgerState:
        """
        Build state from its serialized form.

        Raises:
            ValueError: If the payload does not describe a valid ledger.
        """
        if not isinstance(data, dict):
            raise ValueError("ledger state must be an object")

        xp = data.get("xp", 0)
        coins = data.get("coins", STARTING_COINS)
        tasks = data.get("tasks", {})
        items = data.get("itemsOwned", {})

        if not _is_count(xp) or not _is_count(coins):
            raise ValueError("xp and coins must be non-negative integers")
        if not isinstance(tasks, dict) or not all(
            isinstance(k, str) and isinstance(v, bool) for k, v in tasks.items()
        ):
            raise ValueError("tasks must map task ids to booleans")
        if not isinstance(items, dict) or not all(
            isinstance(k, str) and _is_count(v) for k, v in items.items()
        ):
            raise ValueError("itemsOwned must map item ids to counts")

        level = data.get("level")
        if not _is_count(level) or level < 1:
            level = level_for_xp(xp)

        return cls(xp=xp, coins=coins, tasks=dict(tasks), items_owned=dict(items), level=level)


def _is_count(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def _require_non_negative(name: str, amount: int) -> None:
    if amount < 0:
        raise ValueError(f"{name} must be non-negative, got {amount}")


class LocalLedger:
    """
    The client ledger plus its event bus.

    Args:
        storage: Durable key/value storage the state is kept in.
        bus: Event bus to announce changes on. A private bus is created when
            omitted; pass one only to share its event log in tests.
        key: Storage key of the serialized state.
    """

    def __init__(
        self, storage: Storage, *, bus: LedgerBus | None = None, key: str = STATE_KEY
    ) -> None:
        self.storage = storage
        self.key = key
        self.bus = bus if bus is not None else LedgerBus()
        self.state = self.load()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> LedgerState:
        """Read persisted state, falling back to defaults on any problem."""
        try:
            raw = self.storage.get(self.key)
        except StorageError as exc:
            logger.warning("Could not load ledger, using defaults: %s", exc)
            return LedgerState()

        if raw is None:
            return LedgerState()

        try:
            return LedgerState.from_dict(json.loads(raw))
        except ValueError as exc:
            logger.warning("Stored ledger is corrupt, using defaults: %s", exc)
            return LedgerState()

    def save(self) -> bool:
        """Persist the full state. Returns False (and logs) when storage fails."""
        try:
            self.storage.set(self.key, json.dumps(self.state.to_dict()))
        except StorageError as exc:
            logger.warning("Could not save ledger: %s", exc)
            return False
        return True

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def xp(self) -> int:
        return self.state.xp

    @property
    def coins(self) -> int:
        return self.state.coins

    @property
    def level(self) -> int:
        return self.state.level

    def snapshot(self) -> dict[str, Any]:
        """Return a detached copy of the state in storage form."""
        return self.state.to_dict()

    def task_status(self, task_id: str) -> bool | None:
        """Return True (completed), False (pending) or None (not added)."""
        return self.state.tasks.get(task_id)

    def active_task_count(self) -> int:
        """Number of tasks held by the ledger, pending or completed."""
        return len(self.state.tasks)

    def on(self, event_type: str, handler: EventHandler) -> Unsubscribe:
        """Subscribe to ledger events. See ``be_better.core.events.Events``."""
        return self.bus.on(event_type, handler)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_xp(self, amount: int) -> None:
        """Grant experience points."""
        _require_non_negative("amount", amount)
        self.state.xp += amount
        self.state.level = level_for_xp(self.state.xp)
        self.save()
        self.bus.emit(Events.XP_CHANGED, {"xp": self.state.xp, "delta": amount})

    def add_coins(self, amount: int) -> None:
        """Grant coins."""
        _require_non_negative("amount", amount)
        self.state.coins += amount
        self.save()
        self.bus.emit(Events.COINS_CHANGED, {"coins": self.state.coins, "delta": amount})

    def spend_coins(self, amount: int) -> bool:
        """
        Debit coins.

        Returns:
            False, with no mutation and no event, when the balance is too low.
        """
        _require_non_negative("amount", amount)
        if self.state.coins < amount:
            return False
        self.state.coins -= amount
        self.save()
        self.bus.emit(Events.COINS_CHANGED, {"coins": self.state.coins, "delta": -amount})
        return True

    def toggle_task(self, task_id: str, reward: Reward | None = None) -> bool:
        """
        Flip a task between pending and completed.

        Completing grants the reward (explicit, else the catalog reward for
        ``task_id``, else the default). Un-completing never takes it back, so
        each completed-transition pays exactly once.

        Returns:
            The task's new completed flag.
        """
        if self.state.tasks.get(task_id):
            self.state.tasks[task_id] = False
        else:
            granted = reward if reward is not None else reward_for(task_id)
            self.state.tasks[task_id] = True
            logger.debug("Task %s completed, granting %s", task_id, granted)
            self.add_xp(granted.xp)
            self.add_coins(granted.coins)

        completed = self.state.tasks[task_id]
        self.save()
        self.bus.emit(Events.TASK_TOGGLED, {"id": task_id, "completed": completed})
        return completed

    def add_task(self, task_id: str) -> bool:
        """
        Put a task on the pending list.

        Returns:
            False when the task is already present or the ledger already
            holds MAX_ACTIVE_TASKS tasks.
        """
        if task_id in self.state.tasks:
            return False
        if self.active_task_count() >= MAX_ACTIVE_TASKS:
            return False
        self.state.tasks[task_id] = False
        self.save()
        self.bus.emit(Events.TASK_ADDED, {"id": task_id})
        return True

    def buy_item(self, item_id: str, price: int) -> bool:
        """
        Buy one unit of an item.

        Returns:
            False with no side effect when coins are insufficient.
        """
        if not self.spend_coins(price):
            return False
        count = self.state.items_owned.get(item_id, 0) + 1
        self.state.items_owned[item_id] = count
        self.save()
        self.bus.emit(Events.ITEM_BOUGHT, {"itemId": item_id, "count": count})
        return True

    def apply_remote(
        self, xp: int | None = None, coins: int | None = None, level: int | None = None
    ) -> None:
        """
        Overwrite the server-owned totals with confirmed values.

        The server wins over any local drift. Only the totals passed in are
        written; ``level`` goes with ``xp`` and is ignored without it. Change
        events are re-emitted with ``delta=0`` so displays refresh; the sync
        bridge only calls this while its guard state is active, so those
        events are never synced back.
        """
        if xp is not None:
            _require_non_negative("xp", xp)
        if coins is not None:
            _require_non_negative("coins", coins)
        if xp is None and coins is None:
            return
        if xp is not None:
            self.state.xp = xp
            self.state.level = level if level is not None else level_for_xp(xp)
        if coins is not None:
            self.state.coins = coins
        self.save()
        if xp is not None:
            self.bus.emit(Events.XP_CHANGED, {"xp": xp, "delta": 0}, source="sync")
        if coins is not None:
            self.bus.emit(Events.COINS_CHANGED, {"coins": coins, "delta": 0}, source="sync")
