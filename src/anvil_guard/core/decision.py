# src/anvil_guard/core/decision.py

"""
Blocking decision.

Evaluation order (first match wins):
1. no incomplete non-daily tasks  -> not blocked
2. penalty active                 -> blocked
3. hard task past its hardness    -> blocked (exemptions do not apply)
4. overdue task not exempted      -> blocked
5. otherwise                      -> not blocked

The engine holds no mutable state and performs no writes of its own, so one
instance can be shared by every enforcement path and thread. Store errors
propagate as StoreUnavailableError; they are never turned into "not blocked".
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from .ports import Clock, ExemptionSource, PenaltyPort, TaskRepo

logger = logging.getLogger(__name__)


class BlockReason(StrEnum):
    NO_TASKS = "no_tasks"
    PENALTY = "penalty"
    HARDNESS = "hardness"
    OVERDUE = "overdue"
    CLEAR = "clear"


@dataclass(frozen=True, slots=True)
class Verdict:
    blocked: bool
    reason: BlockReason


def unexempted(tasks: list[Any], exemptions: list[Any]) -> list[Any]:
    if not exemptions:
        return list(tasks)
    return [t for t in tasks if not any(e.covers(t) for e in exemptions)]


class DecisionEngine:
    def __init__(
        self,
        task_repo: TaskRepo,
        penalty: PenaltyPort,
        bonus: ExemptionSource,
        clock: Clock,
    ) -> None:
        self._tasks = task_repo
        self._penalty = penalty
        self._bonus = bonus
        self._clock = clock

    def evaluate(self, now_ts: float | None = None) -> Verdict:
        now = self._clock.wall() if now_ts is None else now_ts

        if self._tasks.count_all_incomplete_non_daily_tasks() == 0:
            return Verdict(False, BlockReason.NO_TASKS)

        if self._penalty.is_penalty_active():
            return Verdict(True, BlockReason.PENALTY)

        if self._tasks.get_tasks_violating_hardness(now):
            return Verdict(True, BlockReason.HARDNESS)

        overdue = self._tasks.get_overdue_incomplete(now)
        if overdue and unexempted(overdue, self._bonus.active_exemptions(now)):
            return Verdict(True, BlockReason.OVERDUE)

        return Verdict(False, BlockReason.CLEAR)

    def is_blocked(self, now_ts: float | None = None) -> bool:
        verdict = self.evaluate(now_ts)
        logger.debug("is_blocked=%s reason=%s", verdict.blocked, verdict.reason.value)
        return verdict.blocked

    def get_blocking_tasks(self, now_ts: float | None = None) -> list[Any]:
        """Hardness violations plus overdue tasks, de-duplicated by id."""
        now = self._clock.wall() if now_ts is None else now_ts
        seen: set[int] = set()
        out: list[Any] = []
        for task in self._tasks.get_tasks_violating_hardness(now) + self._tasks.get_overdue_incomplete(now):
            if task.id in seen:
                continue
            seen.add(task.id)
            out.append(task)
        return out
