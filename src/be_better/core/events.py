"""
Event Type Constants for the local ledger.

Events use "domain:action" format in PAST TENSE: they record facts about a
ledger change that has already been persisted.

    from be_better.core.events import Events

    ledger.on(Events.XP_CHANGED, refresh_counters)
"""


class Events:
    """All event types emitted by a LocalLedger."""

    XP_CHANGED = "xp:changed"
    """
    Emitted after xp changed and the ledger was saved.

    A delta of 0 means the value was overwritten with the server's total.

    Detail: {"xp": int, "delta": int}
    """

    COINS_CHANGED = "coins:changed"
    """
    Emitted after the coin balance changed and the ledger was saved.

    Negative deltas are purchases. A delta of 0 means a server overwrite.

    Detail: {"coins": int, "delta": int}
    """

    TASK_TOGGLED = "task:toggled"
    """
    Emitted after a task flipped between pending and completed.

    Detail: {"id": str, "completed": bool}
    """

    TASK_ADDED = "task:added"
    """
    Emitted after a task was added to the ledger as pending.

    Detail: {"id": str}
    """

    ITEM_BOUGHT = "item:bought"
    """
    Emitted after an item purchase succeeded.

    Detail: {"itemId": str, "count": int}
    """


def is_valid_event_type(event_type: str) -> bool:
    """Return True if ``event_type`` is one of the constants on ``Events``."""
    return event_type in get_all_event_types()


def get_all_event_types() -> list[str]:
    """Return every standard event type, sorted."""
    return sorted(
        value
        for name, value in vars(Events).items()
        if isinstance(value, str) and not name.startswith("_")
    )
