# src/anvil_guard/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass, field

DAY_SECONDS = 24 * 60 * 60


@dataclass(slots=True)
class TaskStep:
    title: str
    is_completed: bool = False


@dataclass(slots=True)
class Task:
    """
    A self-imposed obligation.

    Notes:
    - deadline >= created_at.
    - reminder_sent only moves False -> True (a daily reset starts a new cycle).
    - hardness_level is a lead time in days: a hard task violates its hardness
      constraint that many days before the deadline (0 = at the deadline).
    """

    id: int
    title: str
    deadline: float
    created_at: float

    category: str = "General"
    is_completed: bool = False
    completed_at: float | None = None

    is_daily: bool = False
    is_hard: bool = False
    hardness_level: int = 0

    reminder_sent: bool = False
    last_reset_at: float | None = None

    steps: list[TaskStep] = field(default_factory=list)

    def hardness_deadline(self) -> float:
        return self.deadline - max(0, self.hardness_level) * DAY_SECONDS

    def is_overdue(self, now: float) -> bool:
        return not self.is_completed and self.deadline < now

    def violates_hardness(self, now: float) -> bool:
        return (
            self.is_hard
            and not self.is_daily
            and not self.is_completed
            and self.hardness_deadline() < now
        )


@dataclass(frozen=True, slots=True)
class HabitContribution:
    """Per-day marker: the day closed with no task backlog."""

    id: int
    date: str  # calendar day key, unique
    contribution_value: int
    reason: str
    recorded_at: float


REASON_NO_PENDING_TASKS = "no_pending_tasks"
REASON_STREAK_FREEZE = "streak_freeze"
