"""
Ledger Event Bus

Every change to a local ledger is announced on that ledger's bus. UI code
and the sync bridge subscribe here instead of polling the ledger.

=============================================================================
PRINCIPLES
=============================================================================

1. THE BUS RECORDS FACTS
   - Events represent things that HAPPENED (past tense)
   - "xp:changed" means xp already changed and was persisted

2. EVENTS ARE IMMUTABLE
   - Handlers receive events, they cannot modify them

3. EMIT IS SYNCHRONOUS
   - Handlers run inline, in registration order, before emit() returns
   - Sequence numbers enforce a single order per bus

4. ONE BUS PER LEDGER
   - There is no process-wide bus. The ledger owns its bus and hands out
     subscriptions through ledger.on(). Two ledgers never share events.

=============================================================================
USAGE
=============================================================================

    from be_better.core.bus import LedgerBus

    bus = LedgerBus()

    def on_xp(event):
        print(f"xp is now {event.detail['xp']}")

    unsubscribe = bus.on("xp:changed", on_xp)
    bus.emit("xp:changed", {"xp": 20, "delta": 20})
    unsubscribe()

=============================================================================
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)


# =============================================================================
# TYPE ALIASES
# =============================================================================

EventHandler = Callable[["LedgerEvent"], None]

Unsubscribe = Callable[[], None]


# =============================================================================
# EVENT METADATA
# =============================================================================


@dataclass(frozen=True)
class EventMetadata:
    """
    Metadata attached to every event.

    Attributes:
        timestamp: Unix epoch milliseconds (UTC). For display, NOT for ordering.
        source: Name of the component that emitted this event
                (for example "ledger" or "sync").
        sequence: Monotonically increasing integer per bus. The only reliable
                  way to order two events.
    """

    timestamp: int
    source: str
    sequence: int

    @staticmethod
    def create(source: str, sequence: int) -> EventMetadata:
        """Create metadata stamped with the current UTC time."""
        now_ms = int(datetime.now(UTC).timestamp() * 1000)
        return EventMetadata(timestamp=now_ms, source=source, sequence=sequence)


# =============================================================================
# LEDGER EVENT
# =============================================================================


@dataclass(frozen=True)
class LedgerEvent:
    """
    A single event on a ledger bus.

    Attributes:
        type: "domain:action" event type, e.g. "xp:changed".
        detail: Event payload. Treat as read-only.
        _meta: Timestamp, source and sequence number.

    Example:
        LedgerEvent(
            type="coins:changed",
            detail={"coins": 30, "delta": -20},
            _meta=EventMetadata(timestamp=1706745600000, source="ledger", sequence=7)
        )
    """

    type: str
    detail: dict = field(default_factory=dict)
    _meta: EventMetadata | None = field(default=None)

    def __str__(self) -> str:
        if self._meta:
            return (
                f"LedgerEvent(type='{self.type}', "
                f"source='{self._meta.source}', "
                f"seq={self._meta.sequence})"
            )
        return f"LedgerEvent(type='{self.type}')"

    @property
    def meta(self) -> EventMetadata | None:
        """Public accessor for event metadata."""
        return self._meta


# =============================================================================
# LEDGER BUS
# =============================================================================


class LedgerBus:
    """
    Observer list owned by a single ledger.

    Not thread-safe: the client runs on one asyncio event loop and every
    emit happens on it.

    Key Methods:
    - emit(): Record an event and notify handlers
    - on(): Subscribe to an event type (returns unsubscribe function)
    - once(): Subscribe for a single event only
    - get_event_log(): Retrieve recent event history
    """

    def __init__(self, *, max_log: int = 1000) -> None:
        # event_type -> handlers, in registration order
        self._handlers: dict[str, list[EventHandler]] = {}

        # Bounded history, for debugging and tests
        self._event_log: deque[LedgerEvent] = deque(maxlen=max_log)

        self._sequence: int = 0

        # When True, logs all emit/subscribe/unsubscribe operations
        self.debug: bool = False

    # =========================================================================
    # EMIT
    # =========================================================================

    def emit(
        self, event_type: str, detail: dict[str, Any] | None = None, source: str = "ledger"
    ) -> LedgerEvent:
        """
        Emit an event to the bus.

        When this returns, the event has a sequence number, is in the log and
        every handler has run.

        Args:
            event_type: The type of event (e.g., "xp:changed")
            detail: The event payload. Defaults to an empty dict.
            source: Which component is emitting. Defaults to "ledger".

        Returns:
            The committed LedgerEvent.
        """
        self._sequence += 1
        event = LedgerEvent(
            type=event_type,
            detail=detail if detail is not None else {},
            _meta=EventMetadata.create(source, self._sequence),
        )
        self._event_log.append(event)

        if self.debug:
            logger.debug(f"EMIT [{self._sequence}]: {event.type} from {source}")

        self._notify_handlers(event)
        return event

    def _notify_handlers(self, event: LedgerEvent) -> None:
        """
        Call every handler subscribed to the event type, in registration order.

        Errors are logged and do not stop later handlers; the event already
        happened regardless of what a handler does with it.
        """
        if event.type not in self._handlers:
            return

        # Copy: a handler may unsubscribe itself (once()) while we iterate
        for handler in list(self._handlers[event.type]):
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Handler error for '{event.type}': {e}", exc_info=True)

    # =========================================================================
    # SUBSCRIBE
    # =========================================================================

    def on(self, event_type: str, handler: EventHandler) -> Unsubscribe:
        """
        Subscribe to an event type.

        Args:
            event_type: The event type to listen for (e.g., "coins:changed")
            handler: Callable receiving the LedgerEvent.

        Returns:
            An unsubscribe function. Call it to stop receiving events.
        """
        if event_type not in self._handlers:
            self._handlers[event_type] = []

        self._handlers[event_type].append(handler)

        if self.debug:
            count = len(self._handlers[event_type])
            logger.debug(f"SUBSCRIBE: '{event_type}' (total handlers: {count})")

        def unsubscribe() -> None:
            """Remove this handler from the subscription list."""
            if event_type in self._handlers:
                try:
                    self._handlers[event_type].remove(handler)
                    if self.debug:
                        logger.debug(f"UNSUBSCRIBE: '{event_type}'")
                except ValueError:
                    # Already removed
                    pass

        return unsubscribe

    def once(self, event_type: str, handler: EventHandler) -> Unsubscribe:
        """
        Subscribe to an event type for a single event only.

        Returns:
            An unsubscribe function (to cancel before the event arrives)
        """
        unsub: Unsubscribe | None = None

        def one_time_wrapper(event: LedgerEvent) -> None:
            try:
                handler(event)
            finally:
                if unsub is not None:
                    unsub()

        unsub = self.on(event_type, one_time_wrapper)
        return unsub

    # =========================================================================
    # EVENT LOG ACCESS
    # =========================================================================

    def get_event_log(self, limit: int | None = None) -> list[LedgerEvent]:
        """
        Get events from the log, oldest first.

        Args:
            limit: Maximum number of events to return (from the end).
                   None means return all events in the log.
        """
        if limit is not None:
            return list(self._event_log)[-limit:]
        return list(self._event_log)

    def get_sequence(self) -> int:
        """Return the last assigned sequence number."""
        return self._sequence

    def get_handler_count(self, event_type: str) -> int:
        """Return the number of handlers subscribed to an event type."""
        if event_type not in self._handlers:
            return 0
        return len(self._handlers[event_type])

    def clear_event_log(self) -> None:
        """Erase event history. Sequence numbers keep counting."""
        self._event_log.clear()
