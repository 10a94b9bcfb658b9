# src/anvil_guard/workers/contribution.py

from __future__ import annotations

import logging
from typing import Any

from ..core.calendar import LocalCalendar
from ..core.ports import Clock, ContributionRepo, TaskRepo
from ..tasks.task_models import REASON_NO_PENDING_TASKS, REASON_STREAK_FREEZE
from .base import WorkResult

logger = logging.getLogger(__name__)


class MidnightContributionWorker:
    """
    Evaluate yesterday and record one habit contribution if it was a clean day.

    Clean day: no non-daily task was still pending at the end of yesterday and
    no task was overdue-incomplete as of the end of yesterday.

    If the day was not clean and streak freeze is on, a grace day (when one is
    available) records the day with reason "streak_freeze" instead.

    Idempotent: the day key is unique, so a second run (or a concurrent one)
    inserts nothing.
    """

    name = "midnight_contribution"

    def __init__(
        self,
        tasks: TaskRepo,
        contributions: ContributionRepo,
        clock: Clock,
        calendar: LocalCalendar,
        *,
        bonus: Any | None = None,
        streak_freeze_enabled: bool = True,
    ) -> None:
        self._tasks = tasks
        self._contributions = contributions
        self._clock = clock
        self._calendar = calendar
        self._bonus = bonus
        self._streak_freeze = streak_freeze_enabled

    async def run(self, attempt: int = 0) -> WorkResult:
        try:
            now = self._clock.wall()
            start_of_yesterday = self._calendar.start_of_yesterday(now)
            end_of_yesterday = self._calendar.start_of_day(now)
            day_key = self._calendar.day_key(start_of_yesterday)

            if self._contributions.has_contribution_for_day(day_key):
                logger.debug("Contribution already recorded for %s, skipping", day_key)
                return WorkResult.SUCCESS

            pending = self._tasks.count_pending_non_daily_between(start_of_yesterday, end_of_yesterday)
            overdue = self._tasks.get_overdue_incomplete_as_of(end_of_yesterday)
            logger.debug("Day %s: pending=%d overdue=%d", day_key, pending, len(overdue))

            if pending == 0 and not overdue:
                self._contributions.insert_if_absent(
                    day_key, reason=REASON_NO_PENDING_TASKS, recorded_at=now
                )
            elif self._streak_freeze and self._bonus is not None and self._bonus.consume_grace_day():
                self._freeze_streak(day_key, now)
            else:
                logger.info("No contribution for %s: backlog at end of day", day_key)

            return WorkResult.SUCCESS
        except Exception:
            logger.exception("Error processing midnight contribution")
            return WorkResult.RETRY

    def _freeze_streak(self, day_key: str, now: float) -> None:
        # The grace day is already spent; give it back unless the row lands.
        try:
            inserted = self._contributions.insert_if_absent(
                day_key, reason=REASON_STREAK_FREEZE, recorded_at=now
            )
        except Exception:
            self._bonus.refund_grace_day()
            raise
        if inserted:
            logger.info("Streak saved by a grace day for %s", day_key)
        else:
            self._bonus.refund_grace_day()
            logger.debug("Day %s recorded concurrently, grace day refunded", day_key)
