# src/anvil_guard/tasks/contribution_store.py

from __future__ import annotations

import logging
import sqlite3
import time
from pathlib import Path

from ..storage.db import open_db
from .task_models import REASON_NO_PENDING_TASKS, HabitContribution

logger = logging.getLogger(__name__)


class ContributionStore:
    """
    SQLite store for per-day habit contributions.

    The UNIQUE constraint on `date` is what makes "check, then insert" atomic:
    a concurrent second insert for the same day is ignored, not an error.
    """

    def __init__(self, db_path: str | Path = "anvil.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        with open_db(self._db_path) as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS habit_contributions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    date TEXT NOT NULL UNIQUE,
                    contribution_value INTEGER NOT NULL DEFAULT 1,
                    reason TEXT NOT NULL DEFAULT 'no_pending_tasks',
                    recorded_at REAL NOT NULL
                )
                """
            )

    @staticmethod
    def _row_to_contribution(row: sqlite3.Row) -> HabitContribution:
        return HabitContribution(
            id=int(row["id"]),
            date=str(row["date"]),
            contribution_value=int(row["contribution_value"]),
            reason=str(row["reason"]),
            recorded_at=float(row["recorded_at"]),
        )

    def has_contribution_for_day(self, day_key: str) -> bool:
        with open_db(self._db_path) as conn:
            row = conn.execute(
                "SELECT 1 FROM habit_contributions WHERE date = ? LIMIT 1", (day_key,)
            ).fetchone()
        return row is not None

    def get_contribution_for_day(self, day_key: str) -> HabitContribution | None:
        with open_db(self._db_path) as conn:
            row = conn.execute(
                "SELECT * FROM habit_contributions WHERE date = ? LIMIT 1", (day_key,)
            ).fetchone()
        return self._row_to_contribution(row) if row else None

    def insert_if_absent(
        self,
        day_key: str,
        *,
        reason: str = REASON_NO_PENDING_TASKS,
        contribution_value: int = 1,
        recorded_at: float | None = None,
    ) -> bool:
        """Insert the day's contribution. Returns False if the day was already recorded."""
        if recorded_at is None:
            recorded_at = time.time()
        with open_db(self._db_path) as conn:
            cur = conn.execute(
                """
                INSERT OR IGNORE INTO habit_contributions(date, contribution_value, reason, recorded_at)
                VALUES (?, ?, ?, ?)
                """,
                (day_key, int(contribution_value), reason, float(recorded_at)),
            )
            inserted = cur.rowcount == 1
        if inserted:
            logger.info("Habit contribution recorded date=%s reason=%s", day_key, reason)
        else:
            logger.debug("Habit contribution already present date=%s", day_key)
        return inserted

    def list_contributions(self, limit: int = 366) -> list[HabitContribution]:
        with open_db(self._db_path) as conn:
            rows = conn.execute(
                "SELECT * FROM habit_contributions ORDER BY date DESC LIMIT ?", (int(limit),)
            ).fetchall()
        return [self._row_to_contribution(r) for r in rows]

    def count_contributions(self) -> int:
        with open_db(self._db_path) as conn:
            (n,) = conn.execute("SELECT COUNT(*) FROM habit_contributions").fetchone()
        return int(n)
