"""
Tests for the ledger event bus.

These tests verify the bus contract the ledger and the sync bridge rely on:

1. Events are immutable after creation
2. Emit is synchronous (handlers have run when emit returns)
3. Sequence numbers order events per bus
4. Handlers are called in registration order
5. A failing handler does not stop the others
6. Each bus is independent (no global instance)
"""

import pytest

from be_better.core.bus import EventMetadata, LedgerBus, LedgerEvent
from be_better.core.events import Events, get_all_event_types, is_valid_event_type

# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def test_bus() -> LedgerBus:
    """Provide a fresh bus."""
    return LedgerBus()


# =============================================================================
# EVENT METADATA TESTS
# =============================================================================


class TestEventMetadata:
    """Tests for EventMetadata class."""

    @pytest.mark.unit
    def test_create_metadata(self):
        """EventMetadata.create() should populate all fields."""
        meta = EventMetadata.create(source="ledger", sequence=42)

        assert meta.source == "ledger"
        assert meta.sequence == 42
        assert meta.timestamp > 0

    @pytest.mark.unit
    def test_metadata_is_immutable(self):
        """EventMetadata is a frozen dataclass."""
        meta = EventMetadata.create(source="ledger", sequence=1)

        with pytest.raises(AttributeError):
            meta.source = "modified"  # type: ignore


# =============================================================================
# LEDGER EVENT TESTS
# =============================================================================


class TestLedgerEvent:
    """Tests for LedgerEvent class."""

    @pytest.mark.unit
    def test_event_defaults(self):
        """An event without detail gets an empty dict and no metadata."""
        event = LedgerEvent(type=Events.XP_CHANGED)

        assert event.detail == {}
        assert event.meta is None
        assert str(event) == "LedgerEvent(type='xp:changed')"

    @pytest.mark.unit
    def test_event_is_immutable(self):
        event = LedgerEvent(type=Events.XP_CHANGED, detail={"xp": 10, "delta": 10})

        with pytest.raises(AttributeError):
            event.type = "coins:changed"  # type: ignore

    @pytest.mark.unit
    def test_str_includes_source_and_sequence(self, test_bus: LedgerBus):
        event = test_bus.emit(Events.COINS_CHANGED, {"coins": 30, "delta": -20}, source="sync")

        assert str(event) == "LedgerEvent(type='coins:changed', source='sync', seq=1)"


# =============================================================================
# EMIT / SUBSCRIBE TESTS
# =============================================================================


class TestLedgerBus:
    """Tests for emit, on and once."""

    @pytest.mark.unit
    def test_emit_is_synchronous(self, test_bus: LedgerBus):
        """Handlers have already run by the time emit returns."""
        received = []
        test_bus.on(Events.XP_CHANGED, received.append)

        event = test_bus.emit(Events.XP_CHANGED, {"xp": 10, "delta": 10})

        assert received == [event]

    @pytest.mark.unit
    def test_sequence_numbers_increase(self, test_bus: LedgerBus):
        first = test_bus.emit(Events.XP_CHANGED)
        second = test_bus.emit(Events.COINS_CHANGED)

        assert first.meta.sequence == 1
        assert second.meta.sequence == 2
        assert test_bus.get_sequence() == 2

    @pytest.mark.unit
    def test_handlers_run_in_registration_order(self, test_bus: LedgerBus):
        calls = []
        test_bus.on(Events.TASK_TOGGLED, lambda e: calls.append("first"))
        test_bus.on(Events.TASK_TOGGLED, lambda e: calls.append("second"))

        test_bus.emit(Events.TASK_TOGGLED, {"id": "task-sleep", "completed": True})

        assert calls == ["first", "second"]

    @pytest.mark.unit
    def test_handlers_only_receive_their_event_type(self, test_bus: LedgerBus):
        received = []
        test_bus.on(Events.ITEM_BOUGHT, received.append)

        test_bus.emit(Events.XP_CHANGED)

        assert received == []

    @pytest.mark.unit
    def test_failing_handler_does_not_stop_others(self, test_bus: LedgerBus):
        calls = []

        def broken(event):
            raise RuntimeError("handler bug")

        test_bus.on(Events.XP_CHANGED, broken)
        test_bus.on(Events.XP_CHANGED, lambda e: calls.append(e.type))

        test_bus.emit(Events.XP_CHANGED)

        assert calls == [Events.XP_CHANGED]

    @pytest.mark.unit
    def test_unsubscribe(self, test_bus: LedgerBus):
        received = []
        unsubscribe = test_bus.on(Events.XP_CHANGED, received.append)
        assert test_bus.get_handler_count(Events.XP_CHANGED) == 1

        unsubscribe()
        unsubscribe()  # second call is a no-op
        test_bus.emit(Events.XP_CHANGED)

        assert received == []
        assert test_bus.get_handler_count(Events.XP_CHANGED) == 0

    @pytest.mark.unit
    def test_once_fires_a_single_time(self, test_bus: LedgerBus):
        received = []
        test_bus.once(Events.COINS_CHANGED, received.append)

        test_bus.emit(Events.COINS_CHANGED)
        test_bus.emit(Events.COINS_CHANGED)

        assert len(received) == 1
        assert test_bus.get_handler_count(Events.COINS_CHANGED) == 0

    @pytest.mark.unit
    def test_buses_are_independent(self):
        """Two ledgers never see each other's events."""
        bus_a, bus_b = LedgerBus(), LedgerBus()
        received = []
        bus_b.on(Events.XP_CHANGED, received.append)

        bus_a.emit(Events.XP_CHANGED)

        assert received == []
        assert bus_b.get_sequence() == 0


# =============================================================================
# EVENT LOG TESTS
# =============================================================================


class TestEventLog:
    """Tests for the bounded event history."""

    @pytest.mark.unit
    def test_log_keeps_events_in_order(self, test_bus: LedgerBus):
        test_bus.emit(Events.XP_CHANGED)
        test_bus.emit(Events.COINS_CHANGED)
        test_bus.emit(Events.TASK_TOGGLED)

        assert [e.type for e in test_bus.get_event_log()] == [
            Events.XP_CHANGED,
            Events.COINS_CHANGED,
            Events.TASK_TOGGLED,
        ]
        assert [e.type for e in test_bus.get_event_log(limit=1)] == [Events.TASK_TOGGLED]

    @pytest.mark.unit
    def test_log_is_bounded(self):
        small_bus = LedgerBus(max_log=2)
        for _ in range(5):
            small_bus.emit(Events.XP_CHANGED)

        log = small_bus.get_event_log()
        assert len(log) == 2
        assert log[-1].meta.sequence == 5

    @pytest.mark.unit
    def test_clear_keeps_sequence(self, test_bus: LedgerBus):
        test_bus.emit(Events.XP_CHANGED)
        test_bus.clear_event_log()

        event = test_bus.emit(Events.XP_CHANGED)

        assert test_bus.get_event_log() == [event]
        assert event.meta.sequence == 2


# =============================================================================
# EVENT TYPE TESTS
# =============================================================================


@pytest.mark.unit
def test_all_event_types_are_listed():
    assert get_all_event_types() == [
        "coins:changed",
        "item:bought",
        "task:added",
        "task:toggled",
        "xp:changed",
    ]


@pytest.mark.unit
def test_is_valid_event_type():
    assert is_valid_event_type(Events.ITEM_BOUGHT)
    assert not is_valid_event_type("xp:reset")
