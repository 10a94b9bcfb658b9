# src/anvil_guard/workers/reminder.py

from __future__ import annotations

import logging
from typing import Any

from ..core.calendar import LocalCalendar
from ..core.ports import Clock, Notifier, TaskRepo
from .base import WorkResult

logger = logging.getLogger(__name__)


def halfway_point(task: Any) -> float | None:
    duration = task.deadline - task.created_at
    if duration <= 0:
        return None
    return task.created_at + duration / 2


class ReminderWorker:
    """
    Send one "halfway there" reminder per task.

    The reminder flag is claimed (0 -> 1, atomically) before sending, so at most
    one reminder goes out per task even when runs overlap. Tasks created and
    due on the same local day get no reminder.

    Delivery failures are logged and not retried: they never affect task state
    beyond the claimed flag, nor the blocking verdict.
    """

    name = "reminder"

    def __init__(self, tasks: TaskRepo, notifier: Notifier, clock: Clock, calendar: LocalCalendar) -> None:
        self._tasks = tasks
        self._notifier = notifier
        self._clock = clock
        self._calendar = calendar

    def _is_due(self, task: Any, now: float) -> bool:
        if task.reminder_sent or task.is_completed:
            return False
        midpoint = halfway_point(task)
        if midpoint is None or now < midpoint:
            return False
        if self._calendar.same_day(task.created_at, task.deadline):
            logger.debug("Task %s: same-day task, reminder suppressed", task.id)
            return False
        return True

    async def run(self, attempt: int = 0) -> WorkResult:
        try:
            now = self._clock.wall()
            candidates = [t for t in self._tasks.get_all_incomplete_tasks() if self._is_due(t, now)]
        except Exception:
            logger.exception("Reminder scan failed")
            return WorkResult.RETRY

        sent = 0
        for task in candidates:
            try:
                claimed = self._tasks.try_mark_reminder_sent(task.id)
            except Exception:
                logger.exception("try_mark_reminder_sent failed task_id=%s", task.id)
                return WorkResult.RETRY
            if not claimed:
                continue

            kind = "daily task" if task.is_daily else "task"
            try:
                await self._notifier.notify(
                    title="Halfway There!",
                    body=f"You are halfway to the deadline for {kind}: {task.title}",
                )
                sent += 1
            except Exception:
                logger.warning("Reminder delivery failed task_id=%s", task.id, exc_info=True)

        logger.info("Reminders sent: %d", sent)
        return WorkResult.SUCCESS
