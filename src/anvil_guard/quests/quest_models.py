# src/anvil_guard/quests/quest_models.py

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class QuestType(StrEnum):
    DAILY = "daily"
    WEEKLY_STEP = "weekly_step"
    WEEKLY_BOSS = "weekly_boss"


class QuestCategory(StrEnum):
    TASK = "task"
    BUDGET = "budget"
    FOCUS = "focus"
    SAVINGS = "savings"
    COMBAT = "combat"
    GENERAL = "general"


@dataclass(slots=True)
class Quest:
    title: str
    description: str
    quest_type: QuestType
    category: QuestCategory
    target_value: int
    expires_at: float
    created_at: float

    current_value: int = 0
    reward_coins: int = 0
    reward_xp: int = 0
    is_completed: bool = False
    is_active: bool = True
    week_chain_id: str | None = None
    week_chain_step: int = 0
    completed_at: float | None = None
    id: int | None = None


@dataclass(frozen=True, slots=True)
class QuestTemplate:
    title: str
    description: str
    category: QuestCategory
    target_value: int
    reward_coins: int
    reward_xp: int


DAILY_TEMPLATES: tuple[QuestTemplate, ...] = (
    QuestTemplate("Early Strike", "Complete 1 task before noon", QuestCategory.TASK, 1, 5, 10),
    QuestTemplate("Triple Threat", "Complete 3 tasks today", QuestCategory.TASK, 3, 10, 20),
    QuestTemplate("Deep Work", "Finish a focus session", QuestCategory.FOCUS, 1, 8, 15),
    QuestTemplate("Ledger Keeper", "Log a budget entry", QuestCategory.BUDGET, 1, 5, 10),
    QuestTemplate("Coin Jar", "Add to a savings goal", QuestCategory.SAVINGS, 1, 5, 10),
    QuestTemplate("Side Quest", "Complete a bonus task", QuestCategory.GENERAL, 1, 8, 12),
)

# (title, description, type, category, target, coins, xp)
WEEKLY_CHAIN: tuple[tuple[str, str, QuestType, QuestCategory, int, int, int], ...] = (
    ("Gather Strength", "Complete 3 tasks to prepare", QuestType.WEEKLY_STEP, QuestCategory.TASK, 3, 10, 15),
    ("Forge Ahead", "Complete 2 more tasks", QuestType.WEEKLY_STEP, QuestCategory.TASK, 2, 10, 15),
    ("Sharpen Focus", "Complete 2 focus sessions", QuestType.WEEKLY_STEP, QuestCategory.FOCUS, 2, 15, 20),
    ("Mental Training", "Complete 1 more focus session", QuestType.WEEKLY_STEP, QuestCategory.FOCUS, 1, 10, 15),
    ("Count the Gold", "Log 2 budget entries", QuestType.WEEKLY_STEP, QuestCategory.BUDGET, 2, 15, 20),
    ("Build the Vault", "Add a savings contribution", QuestType.WEEKLY_STEP, QuestCategory.SAVINGS, 1, 15, 20),
    ("Boss Fight!", "Defeat the weekly boss monster", QuestType.WEEKLY_BOSS, QuestCategory.COMBAT, 1, 50, 75),
)
