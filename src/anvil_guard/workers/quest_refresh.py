# src/anvil_guard/workers/quest_refresh.py

from __future__ import annotations

import logging

from ..core.ports import Clock
from ..quests.quest_manager import QuestManager
from .base import RetryPolicy, WorkResult

logger = logging.getLogger(__name__)

MAX_RETRIES = 3


class QuestRefreshWorker:
    """
    Cleanup expired quests, generate today's dailies, and always attempt the
    weekly chain (idempotent), which catches weeks where the trigger was
    missed on the first day.

    Each step is safe to re-run, so a failure between steps leaves nothing
    half-applied that the next attempt cannot finish.
    """

    name = "quest_refresh"

    def __init__(self, quests: QuestManager, clock: Clock, *, backoff_seconds: float = 30.0) -> None:
        self._quests = quests
        self._clock = clock
        self.retry_policy = RetryPolicy(max_attempts=MAX_RETRIES + 1, backoff_seconds=backoff_seconds)

    async def run(self, attempt: int = 0) -> WorkResult:
        try:
            now = self._clock.wall()
            self._quests.cleanup_expired_quests(now)
            self._quests.generate_daily_quests(now)
            self._quests.generate_weekly_chain(now)
            logger.debug("Quest refresh completed successfully")
            return WorkResult.SUCCESS
        except Exception:
            logger.exception("Quest refresh failed (attempt %d/%d)", attempt + 1, MAX_RETRIES + 1)
            if attempt < MAX_RETRIES:
                return WorkResult.RETRY
            logger.error("Max retries exceeded, giving up")
            return WorkResult.FAILURE
