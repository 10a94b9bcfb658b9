# src/anvil_guard/workers/enforcement.py

from __future__ import annotations

import logging

from ..bonus.bonus_manager import BonusManager
from ..core.calendar import LocalCalendar
from ..core.decision import unexempted
from ..core.ports import Clock, PenaltyPort, TaskRepo
from .base import WorkResult

logger = logging.getLogger(__name__)


class EnforcementWorker:
    """
    Policy escalation. The decision engine only reads; this worker is the
    single place that turns violations into penalties.

    Each run:
    1. a raised clock-tamper flag triggers a penalty (when enabled);
    2. stale grace days expire;
    3. no incomplete non-daily tasks -> any penalty is cleared;
    4. otherwise, with no penalty running and a hardness violation or an
       unexempted overdue task present, a grace day covers the rest of the
       local day, or, without one, a penalty starts.
    """

    name = "enforcement"

    def __init__(
        self,
        tasks: TaskRepo,
        penalty: PenaltyPort,
        bonus: BonusManager,
        clock: Clock,
        calendar: LocalCalendar,
        *,
        penalty_seconds: float,
        penalize_clock_tamper: bool = True,
    ) -> None:
        self._tasks = tasks
        self._penalty = penalty
        self._bonus = bonus
        self._clock = clock
        self._calendar = calendar
        self._penalty_seconds = float(penalty_seconds)
        self._penalize_tamper = penalize_clock_tamper

    async def run(self, attempt: int = 0) -> WorkResult:
        try:
            now = self._clock.wall()

            if self._penalty.consume_tamper_flag() and self._penalize_tamper:
                logger.warning("Clock rollback detected -> penalty")
                self._penalty.trigger_penalty(self._penalty_seconds)

            self._bonus.check_expiry(now)

            if self._tasks.count_all_incomplete_non_daily_tasks() == 0:
                if self._penalty.is_penalty_active():
                    self._penalty.clear_penalty()
                return WorkResult.SUCCESS

            if self._penalty.is_penalty_active() or self._bonus.is_grace_covering(now):
                return WorkResult.SUCCESS

            violations = self._tasks.get_tasks_violating_hardness(now)
            if not violations:
                violations = unexempted(
                    self._tasks.get_overdue_incomplete(now), self._bonus.active_exemptions(now)
                )
            if not violations:
                return WorkResult.SUCCESS

            ids = [t.id for t in violations]
            if self._bonus.consume_grace_day(cover_until=self._calendar.start_of_next_day(now)):
                logger.info("Violations %s covered by a grace day", ids)
            else:
                logger.info("Violations %s and no grace left -> penalty", ids)
                self._penalty.trigger_penalty(self._penalty_seconds)
            return WorkResult.SUCCESS
        except Exception:
            logger.exception("Enforcement pass failed")
            return WorkResult.RETRY
