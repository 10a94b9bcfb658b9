# src/anvil_guard/core/state.py

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass, field
from typing import Any

from ..bonus.bonus_manager import BonusManager
from ..penalty.penalty_manager import PenaltyManager
from ..quests.quest_manager import QuestManager
from ..quests.quest_store import QuestStore
from ..tasks.contribution_store import ContributionStore
from ..tasks.task_store import TaskStore
from .calendar import LocalCalendar
from .decision import DecisionEngine
from .ports import Clock, Notifier


@dataclass
class AppState:
    """Everything the composition root wires together, passed explicitly to connectors."""

    settings: Any
    clock: Clock
    calendar: LocalCalendar

    task_store: TaskStore
    contributions: ContributionStore
    quest_store: QuestStore
    quests: QuestManager
    penalty: PenaltyManager
    bonus: BonusManager
    engine: DecisionEngine
    notifier: Notifier

    workers: dict[str, Any] = field(default_factory=dict)

    # Event loop of the background worker thread, once it is running.
    loop: asyncio.AbstractEventLoop | None = None

    # Serializes console commands against each other (workers use store transactions).
    lock: threading.Lock = field(default_factory=threading.Lock)
