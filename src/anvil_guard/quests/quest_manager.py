# src/anvil_guard/quests/quest_manager.py

from __future__ import annotations

import logging
import random

from ..core.calendar import LocalCalendar
from ..core.ports import QuestRepo
from .quest_models import DAILY_TEMPLATES, WEEKLY_CHAIN, Quest, QuestType

logger = logging.getLogger(__name__)

DAILY_QUESTS_PER_DAY = 3


class QuestManager:
    """
    Quest generation. Every operation is safe to re-run:
    - cleanup only deletes what is already expired,
    - daily generation is skipped once today's dailies exist,
    - weekly generation is skipped once this ISO week's chain exists.
    """

    def __init__(self, repo: QuestRepo, calendar: LocalCalendar, rng: random.Random | None = None) -> None:
        self._repo = repo
        self._calendar = calendar
        self._rng = rng or random.Random()

    def cleanup_expired_quests(self, now_ts: float) -> int:
        removed = self._repo.cleanup_expired(now_ts)
        if removed:
            logger.info("Removed %d expired quests", removed)
        return removed

    def generate_daily_quests(self, now_ts: float) -> bool:
        start = self._calendar.start_of_day(now_ts)
        if self._repo.get_daily_quests_since(start):
            logger.debug("Daily quests already generated for %s", self._calendar.day_key(now_ts))
            return False

        end = self._calendar.start_of_next_day(now_ts)
        templates = self._rng.sample(DAILY_TEMPLATES, k=min(DAILY_QUESTS_PER_DAY, len(DAILY_TEMPLATES)))
        self._repo.insert_all(
            [
                Quest(
                    title=t.title,
                    description=t.description,
                    quest_type=QuestType.DAILY,
                    category=t.category,
                    target_value=t.target_value,
                    reward_coins=t.reward_coins,
                    reward_xp=t.reward_xp,
                    created_at=now_ts,
                    expires_at=end,
                )
                for t in templates
            ]
        )
        logger.info("Generated %d daily quests", len(templates))
        return True

    def generate_weekly_chain(self, now_ts: float) -> bool:
        chain_id = self._calendar.week_chain_id(now_ts)
        if self._repo.has_weekly_chain(chain_id):
            logger.debug("Weekly chain %s already exists", chain_id)
            return False

        end_of_week = self._calendar.end_of_week(now_ts)
        self._repo.insert_all(
            [
                Quest(
                    title=title,
                    description=description,
                    quest_type=quest_type,
                    category=category,
                    target_value=target,
                    reward_coins=coins,
                    reward_xp=xp,
                    week_chain_id=chain_id,
                    week_chain_step=step,
                    created_at=now_ts,
                    expires_at=end_of_week,
                )
                for step, (title, description, quest_type, category, target, coins, xp) in enumerate(WEEKLY_CHAIN)
            ]
        )
        logger.info("Generated weekly chain %s", chain_id)
        return True
