# src/anvil_guard/workers/daily_reset.py

from __future__ import annotations

import logging

from ..core.calendar import LocalCalendar
from ..core.ports import Clock, TaskRepo
from .base import WorkResult

logger = logging.getLogger(__name__)


class DailyTaskResetWorker:
    """
    Start a new cycle for daily tasks whose state belongs to a prior local day:
    not completed, reminder not sent, deadline moved to today.

    Re-running on the same day is a no-op: reset tasks carry last_reset_at
    inside today, which the query excludes.
    """

    name = "daily_reset"

    def __init__(self, tasks: TaskRepo, clock: Clock, calendar: LocalCalendar) -> None:
        self._tasks = tasks
        self._clock = clock
        self._calendar = calendar

    async def run(self, attempt: int = 0) -> WorkResult:
        try:
            now = self._clock.wall()
            start_of_today = self._calendar.start_of_day(now)
            to_reset = self._tasks.get_daily_tasks_needing_reset(start_of_today)

            for task in to_reset:
                task.is_completed = False
                task.completed_at = None
                task.reminder_sent = False
                task.last_reset_at = now
                task.deadline = self._calendar.roll_forward(task.deadline, now)
                self._tasks.update(task)

            logger.info("Reset %d daily tasks", len(to_reset))
            return WorkResult.SUCCESS
        except Exception:
            logger.exception("Failed to reset daily tasks")
            return WorkResult.RETRY
