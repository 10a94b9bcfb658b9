# src/anvil_guard/core/ports.py

"""
Ports (interfaces) used by the core.

The decision engine and the workers depend on Protocols instead of concrete
implementations. Concrete stores are wired once in the composition root
(cli/bootstrap.py); tests substitute in-memory fakes.
"""

from __future__ import annotations

from typing import Any, Awaitable, Protocol


class Clock(Protocol):
    """Wall clock (user-adjustable) and monotonic boot-time clock, both in seconds."""

    def wall(self) -> float: ...
    def monotonic(self) -> float: ...


class Notifier(Protocol):
    """
    How workers reach the user.

    Implementations raise NotificationError when delivery is impossible.
    """

    def notify(self, *, title: str, body: str) -> Awaitable[None]: ...


class TaskRepo(Protocol):
    # Decision engine queries (pure reads)
    def count_all_incomplete_non_daily_tasks(self) -> int: ...
    def get_tasks_violating_hardness(self, now_ts: float) -> list[Any]: ...
    def get_overdue_incomplete(self, now_ts: float) -> list[Any]: ...

    # Worker queries / mutations
    def get_daily_tasks_needing_reset(self, start_of_today: float) -> list[Any]: ...
    def get_all_incomplete_tasks(self) -> list[Any]: ...
    def update(self, task: Any) -> None: ...
    def try_mark_reminder_sent(self, task_id: int) -> bool: ...
    def count_pending_non_daily_between(self, start_ts: float, end_ts: float) -> int: ...
    def get_overdue_incomplete_as_of(self, end_ts: float) -> list[Any]: ...


class PenaltyPort(Protocol):
    def is_penalty_active(self) -> bool: ...
    def trigger_penalty(self, duration_seconds: float | None = None) -> float: ...
    def clear_penalty(self) -> None: ...
    def consume_tamper_flag(self) -> bool: ...


class ExemptionSource(Protocol):
    """Read side of the bonus manager, as seen by the decision engine."""

    def active_exemptions(self, now_ts: float) -> list[Any]: ...


class ContributionRepo(Protocol):
    def has_contribution_for_day(self, day_key: str) -> bool: ...
    def insert_if_absent(
        self,
        day_key: str,
        *,
        reason: str = ...,
        contribution_value: int = 1,
        recorded_at: float | None = None,
    ) -> bool: ...


class QuestRepo(Protocol):
    def cleanup_expired(self, now_ts: float) -> int: ...
    def get_daily_quests_since(self, start_of_day: float) -> list[Any]: ...
    def has_weekly_chain(self, chain_id: str) -> bool: ...
    def insert_all(self, quests: list[Any]) -> None: ...
