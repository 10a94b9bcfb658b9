# src/anvil_guard/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete stores, managers, the decision engine and the workers into AppState.

Nothing else in the package constructs collaborators or reads global config.
"""

from __future__ import annotations

import logging

from ..bonus.bonus_manager import BonusManager
from ..config import get_settings
from ..connectors.notifier import LogNotifier, MatrixNotifier
from ..core.calendar import LocalCalendar
from ..core.clock import SystemClock
from ..core.decision import DecisionEngine
from ..core.ports import Clock, Notifier
from ..core.state import AppState
from ..penalty.penalty_manager import PenaltyManager
from ..quests.quest_manager import QuestManager
from ..quests.quest_store import QuestStore
from ..tasks.contribution_store import ContributionStore
from ..tasks.task_store import TaskStore
from ..workers.contribution import MidnightContributionWorker
from ..workers.daily_reset import DailyTaskResetWorker
from ..workers.enforcement import EnforcementWorker
from ..workers.quest_refresh import QuestRefreshWorker
from ..workers.reminder import ReminderWorker

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)


def _build_notifier(settings) -> Notifier:
    if getattr(settings, "matrix_enabled", False):
        logger.info("Reminders will be delivered to Matrix room %s", settings.matrix_room)
        return MatrixNotifier(settings)
    return LogNotifier()


def create_initial_state(
    *,
    settings=None,
    clock: Clock | None = None,
    notifier: Notifier | None = None,
) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings/clock/notifier injectable makes the app easier to test and
    avoids hidden global config reads. If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()
    if clock is None:
        clock = SystemClock()
    if notifier is None:
        notifier = _build_notifier(settings)

    _ensure_local_dirs(settings)

    calendar = LocalCalendar(settings.timezone)
    db_path = settings.db_path

    task_store = TaskStore(db_path)
    contributions = ContributionStore(db_path)
    quest_store = QuestStore(db_path)
    quests = QuestManager(quest_store, calendar)
    penalty = PenaltyManager(
        db_path,
        clock,
        tolerance_seconds=settings.tamper_tolerance_seconds,
        default_duration_seconds=settings.penalty_seconds,
    )
    bonus = BonusManager(
        db_path,
        clock,
        exemption_seconds=settings.bonus_exemption_seconds,
        max_grace_days=settings.max_grace_days,
        grace_expiry_seconds=settings.grace_expiry_seconds,
        bonus_tasks_for_grace=settings.bonus_tasks_for_grace,
    )
    engine = DecisionEngine(task_store, penalty, bonus, clock)

    # Yesterday is evaluated before the daily reset rewrites it.
    workers = [
        MidnightContributionWorker(
            task_store,
            contributions,
            clock,
            calendar,
            bonus=bonus,
            streak_freeze_enabled=settings.streak_freeze_enabled,
        ),
        DailyTaskResetWorker(task_store, clock, calendar),
        ReminderWorker(task_store, notifier, clock, calendar),
        QuestRefreshWorker(quests, clock, backoff_seconds=settings.retry_backoff_seconds),
        EnforcementWorker(
            task_store,
            penalty,
            bonus,
            clock,
            calendar,
            penalty_seconds=settings.penalty_seconds,
            penalize_clock_tamper=settings.penalize_clock_tamper,
        ),
    ]

    state = AppState(
        settings=settings,
        clock=clock,
        calendar=calendar,
        task_store=task_store,
        contributions=contributions,
        quest_store=quest_store,
        quests=quests,
        penalty=penalty,
        bonus=bonus,
        engine=engine,
        notifier=notifier,
        workers={w.name: w for w in workers},
    )
    logger.info("AppState ready db=%s tz=%s", db_path, getattr(settings, "timezone_name", "UTC"))
    return state
