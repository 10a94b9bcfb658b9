# src/anvil_guard/tasks/task_store.py

from __future__ import annotations

import json
import logging
import sqlite3
import time
from collections.abc import Iterable
from pathlib import Path

from ..storage.db import add_missing_columns, open_db
from .task_models import DAY_SECONDS, Task, TaskStep

logger = logging.getLogger(__name__)


class TaskStore:
    """
    SQLite task store.

    The schema is intentionally simple and migration-safe:
    - create table if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Thread-safety:
    - each method opens its own SQLite connection
    - every mutation is a single-row statement in its own transaction
    """

    def __init__(self, db_path: str | Path = "anvil.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        logger.info("TaskStore ready db=%s total=%s", self._db_path, self.count_tasks())

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    def _ensure_schema(self) -> None:
        with open_db(self._db_path) as conn:
            cur = conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    category TEXT NOT NULL DEFAULT 'General',
                    deadline REAL NOT NULL,
                    created_at REAL NOT NULL,
                    is_completed INTEGER NOT NULL DEFAULT 0,
                    completed_at REAL,
                    is_daily INTEGER NOT NULL DEFAULT 0,
                    is_hard INTEGER NOT NULL DEFAULT 0,
                    reminder_sent INTEGER NOT NULL DEFAULT 0,
                    steps TEXT NOT NULL DEFAULT '[]'
                )
                """
            )
            add_missing_columns(
                cur,
                "tasks",
                {
                    "hardness_level": "INTEGER NOT NULL DEFAULT 0",
                    "last_reset_at": "REAL",
                },
            )
            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_open ON tasks(is_completed, deadline)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_daily ON tasks(is_daily)")

    @staticmethod
    def _steps_to_str(steps: Iterable[TaskStep]) -> str:
        return json.dumps(
            [{"title": s.title, "is_completed": bool(s.is_completed)} for s in steps],
            ensure_ascii=False,
        )

    @staticmethod
    def _str_to_steps(s: str | None) -> list[TaskStep]:
        if not s:
            return []
        try:
            raw = json.loads(s)
        except ValueError:
            logger.warning("Unreadable steps payload; treating as empty.")
            return []
        if not isinstance(raw, list):
            return []
        return [
            TaskStep(title=str(item.get("title", "")), is_completed=bool(item.get("is_completed")))
            for item in raw
            if isinstance(item, dict)
        ]

    def _row_to_task(self, row: sqlite3.Row) -> Task:
        return Task(
            id=int(row["id"]),
            title=str(row["title"] or ""),
            category=str(row["category"] or "General"),
            deadline=float(row["deadline"]),
            created_at=float(row["created_at"]),
            is_completed=bool(row["is_completed"]),
            completed_at=float(row["completed_at"]) if row["completed_at"] is not None else None,
            is_daily=bool(row["is_daily"]),
            is_hard=bool(row["is_hard"]),
            hardness_level=int(row["hardness_level"] or 0),
            reminder_sent=bool(row["reminder_sent"]),
            last_reset_at=float(row["last_reset_at"]) if row["last_reset_at"] is not None else None,
            steps=self._str_to_steps(row["steps"]),
        )

    def _select(self, sql: str, params: tuple = ()) -> list[Task]:
        with open_db(self._db_path) as conn:
            rows = conn.execute(sql, params).fetchall()
        return [self._row_to_task(r) for r in rows]

    def _count(self, sql: str, params: tuple = ()) -> int:
        with open_db(self._db_path) as conn:
            (n,) = conn.execute(sql, params).fetchone()
        return int(n)

    # ---- CRUD ----

    def count_tasks(self) -> int:
        return self._count("SELECT COUNT(*) FROM tasks")

    def add_task(
        self,
        *,
        title: str,
        deadline: float,
        created_at: float | None = None,
        category: str = "General",
        is_daily: bool = False,
        is_hard: bool = False,
        hardness_level: int = 0,
        steps: Iterable[TaskStep] = (),
    ) -> int:
        if not title or not title.strip():
            raise ValueError("title is required")
        if created_at is None:
            created_at = time.time()
        if deadline < created_at:
            raise ValueError("deadline must not be earlier than created_at")

        with open_db(self._db_path) as conn:
            cur = conn.execute(
                """
                INSERT INTO tasks(
                    title, category, deadline, created_at,
                    is_daily, is_hard, hardness_level, steps
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    title.strip(),
                    category.strip() or "General",
                    float(deadline),
                    float(created_at),
                    int(bool(is_daily)),
                    int(bool(is_hard)),
                    max(0, int(hardness_level)),
                    self._steps_to_str(steps),
                ),
            )
            rowid = cur.lastrowid
        if rowid is None:
            raise RuntimeError("SQLite did not return lastrowid for tasks insert")
        task_id = int(rowid)
        logger.debug(
            "Task added id=%s daily=%s hard=%s deadline=%s", task_id, is_daily, is_hard, deadline
        )
        return task_id

    def get_task(self, task_id: int) -> Task | None:
        rows = self._select("SELECT * FROM tasks WHERE id = ?", (int(task_id),))
        return rows[0] if rows else None

    def list_tasks(self, *, include_completed: bool = True) -> list[Task]:
        if include_completed:
            return self._select("SELECT * FROM tasks ORDER BY deadline ASC")
        return self._select("SELECT * FROM tasks WHERE is_completed = 0 ORDER BY deadline ASC")

    def update(self, task: Task) -> None:
        """Write every mutable field of one task (single-row transaction)."""
        with open_db(self._db_path) as conn:
            conn.execute(
                """
                UPDATE tasks
                SET title = ?, category = ?, deadline = ?,
                    is_completed = ?, completed_at = ?,
                    is_daily = ?, is_hard = ?, hardness_level = ?,
                    reminder_sent = ?, last_reset_at = ?, steps = ?
                WHERE id = ?
                """,
                (
                    task.title,
                    task.category,
                    float(task.deadline),
                    int(task.is_completed),
                    task.completed_at,
                    int(task.is_daily),
                    int(task.is_hard),
                    int(task.hardness_level),
                    int(task.reminder_sent),
                    task.last_reset_at,
                    self._steps_to_str(task.steps),
                    int(task.id),
                ),
            )

    def complete_task(self, task_id: int, now_ts: float | None = None) -> bool:
        """Mark a task completed. Returns False if it was already completed or missing."""
        if now_ts is None:
            now_ts = time.time()
        with open_db(self._db_path) as conn:
            cur = conn.execute(
                "UPDATE tasks SET is_completed = 1, completed_at = ? WHERE id = ? AND is_completed = 0",
                (float(now_ts), int(task_id)),
            )
            done = cur.rowcount == 1
        if done:
            logger.info("Task %s completed", task_id)
        return done

    def delete_task(self, task_id: int) -> None:
        with open_db(self._db_path) as conn:
            conn.execute("DELETE FROM tasks WHERE id = ?", (int(task_id),))

    def try_mark_reminder_sent(self, task_id: int) -> bool:
        """
        Claim the one-time reminder for a task.

        Atomically transitions reminder_sent 0 -> 1. Returns True only for the
        caller that performed the transition.
        """
        with open_db(self._db_path) as conn:
            cur = conn.execute(
                "UPDATE tasks SET reminder_sent = 1 WHERE id = ? AND reminder_sent = 0",
                (int(task_id),),
            )
            return cur.rowcount == 1

    # ---- policy queries ----

    def count_all_incomplete_non_daily_tasks(self) -> int:
        return self._count("SELECT COUNT(*) FROM tasks WHERE is_completed = 0 AND is_daily = 0")

    def get_tasks_violating_hardness(self, now_ts: float) -> list[Task]:
        return self._select(
            """
            SELECT * FROM tasks
            WHERE is_completed = 0
              AND is_daily = 0
              AND is_hard = 1
              AND (deadline - (hardness_level * ?)) < ?
            ORDER BY deadline ASC
            """,
            (DAY_SECONDS, float(now_ts)),
        )

    def get_overdue_incomplete(self, now_ts: float) -> list[Task]:
        return self._select(
            "SELECT * FROM tasks WHERE is_completed = 0 AND deadline < ? ORDER BY deadline ASC",
            (float(now_ts),),
        )

    def get_all_incomplete_tasks(self) -> list[Task]:
        return self.list_tasks(include_completed=False)

    def get_daily_tasks_needing_reset(self, start_of_today: float) -> list[Task]:
        """
        Daily tasks whose state still belongs to a prior local day.

        A daily task's cycle starts at its last reset (or creation); anything
        whose cycle started before start_of_today needs a reset.
        """
        return self._select(
            """
            SELECT * FROM tasks
            WHERE is_daily = 1
              AND COALESCE(last_reset_at, created_at) < ?
            ORDER BY id ASC
            """,
            (float(start_of_today),),
        )

    def count_pending_non_daily_between(self, start_ts: float, end_ts: float) -> int:
        """Non-daily tasks due in [start_ts, end_ts) that were still open at end_ts."""
        return self._count(
            """
            SELECT COUNT(*) FROM tasks
            WHERE is_daily = 0
              AND created_at < ?
              AND deadline >= ?
              AND deadline < ?
              AND (is_completed = 0 OR completed_at >= ?)
            """,
            (float(end_ts), float(start_ts), float(end_ts), float(end_ts)),
        )

    def get_overdue_incomplete_as_of(self, end_ts: float) -> list[Task]:
        """Tasks whose deadline passed before end_ts and that were not completed by then."""
        return self._select(
            """
            SELECT * FROM tasks
            WHERE created_at < ?
              AND deadline < ?
              AND (is_completed = 0 OR completed_at >= ?)
            ORDER BY deadline ASC
            """,
            (float(end_ts), float(end_ts), float(end_ts)),
        )
