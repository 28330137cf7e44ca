"""
Reward rules: levels and the per-task reward catalog.

Everything here is pure. The client uses it to display progress and the API
server uses the same ``level_for_xp`` when it recomputes a user's level, so
both sides always agree on the level for a given xp total.
"""

from __future__ import annotations

from dataclasses import dataclass

# Experience points required per level.
XP_PER_LEVEL = 100

# Coin balance of a brand-new ledger, on the client and on the server.
STARTING_COINS = 50


@dataclass(frozen=True, slots=True)
class Reward:
    """Experience points and coins granted for completing a task."""

    xp: int
    coins: int


@dataclass(frozen=True, slots=True)
class TaskDefinition:
    """A habit from the built-in task pool."""

    id: str
    title: str
    reward: Reward


@dataclass(frozen=True, slots=True)
class LevelProgress:
    """
    Level information derived from an xp total.

    Attributes:
        xp: The xp total the progress was computed from.
        level: Current level (1-based).
        xp_to_next: Experience still needed to reach the next level.
    """

    xp: int
    level: int
    xp_to_next: int


DEFAULT_REWARD = Reward(xp=10, coins=5)

TASK_CATALOG: dict[str, TaskDefinition] = {
    task.id: task
    for task in (
        TaskDefinition("task-exercise", "Exercise 30 minutes", Reward(xp=20, coins=10)),
        TaskDefinition("task-journal", "Write morning journal", Reward(xp=15, coins=5)),
        TaskDefinition("task-sleep", "Go to bed before 23:00", Reward(xp=10, coins=6)),
        TaskDefinition("task-no-phone", "No phone 1 hour", Reward(xp=12, coins=4)),
        TaskDefinition("task-hydrate", "Drink 2L water", Reward(xp=8, coins=3)),
    )
}


def level_for_xp(xp: int) -> int:
    """
    Return the level for an xp total: ``xp // 100 + 1``.

    Raises:
        ValueError: If ``xp`` is negative.
    """
    if xp < 0:
        raise ValueError(f"xp must be non-negative, got {xp}")
    return xp // XP_PER_LEVEL + 1


def xp_to_next_level(xp: int) -> int:
    """Return how much xp is missing to reach the next level."""
    return level_for_xp(xp) * XP_PER_LEVEL - xp


def progress_for(xp: int) -> LevelProgress:
    """Bundle level and xp-to-next for display."""
    return LevelProgress(xp=xp, level=level_for_xp(xp), xp_to_next=xp_to_next_level(xp))


def reward_for(task_id: str) -> Reward:
    """Return the catalog reward for ``task_id``, or the default reward."""
    task = TASK_CATALOG.get(task_id)
    return task.reward if task else DEFAULT_REWARD
