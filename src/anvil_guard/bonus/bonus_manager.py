# src/anvil_guard/bonus/bonus_manager.py

"""
Bonus-task bookkeeping.

Completing a bonus task has two effects:
- it grants a temporary exemption window (grantedAt, expiresAt, scope),
  keyed by the bonus task so re-applying the same completion is a no-op;
- it adds one credit to the bonus counter; every `bonus_tasks_for_grace`
  credits are exchanged for a grace day (capped, expiring).

Grace days are consumed by the enforcement worker instead of a penalty and
by the midnight worker as a streak freeze.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..core.ports import Clock
from ..storage.db import add_missing_columns, open_db

logger = logging.getLogger(__name__)

SCOPE_ALL = "all"

MAX_GRACE_DAYS = 3
GRACE_EXPIRY_SECONDS = 7 * 24 * 60 * 60
BONUS_TASKS_FOR_GRACE = 5
EXEMPTION_SECONDS = 60 * 60


@dataclass(frozen=True, slots=True)
class BonusTask:
    id: int
    title: str
    description: str | None
    category: str
    contribution_value: int
    scope: str
    created_at: float
    completed_at: float | None = None


@dataclass(frozen=True, slots=True)
class Exemption:
    bonus_task_id: int
    granted_at: float
    expires_at: float
    scope: str

    def is_active(self, now_ts: float) -> bool:
        return self.granted_at <= now_ts < self.expires_at

    def covers(self, task: Any) -> bool:
        """
        Scope forms:
          "all"              every task
          "task:<id>"        one task
          "category:<name>"  tasks of one category (case-insensitive)
        """
        kind, _, value = self.scope.partition(":")
        if kind == SCOPE_ALL:
            return True
        if kind == "task":
            return str(getattr(task, "id", "")) == value
        if kind == "category":
            return str(getattr(task, "category", "")).lower() == value.lower()
        return False


def normalize_scope(scope: str | None) -> str:
    s = (scope or SCOPE_ALL).strip()
    kind, sep, value = s.partition(":")
    if kind == SCOPE_ALL and not sep:
        return SCOPE_ALL
    if kind in ("task", "category") and sep and value.strip():
        return f"{kind}:{value.strip()}"
    raise ValueError(f"invalid exemption scope: {scope!r}")


class BonusManager:
    def __init__(
        self,
        db_path: str | Path,
        clock: Clock,
        *,
        exemption_seconds: float = EXEMPTION_SECONDS,
        max_grace_days: int = MAX_GRACE_DAYS,
        grace_expiry_seconds: float = GRACE_EXPIRY_SECONDS,
        bonus_tasks_for_grace: int = BONUS_TASKS_FOR_GRACE,
    ) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._clock = clock
        self._exemption_seconds = float(exemption_seconds)
        self._max_grace_days = int(max_grace_days)
        self._grace_expiry_seconds = float(grace_expiry_seconds)
        self._bonus_tasks_for_grace = max(1, int(bonus_tasks_for_grace))
        self._lock = threading.Lock()
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        with open_db(self._db_path) as conn:
            cur = conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS bonus_tasks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    description TEXT,
                    category TEXT NOT NULL DEFAULT 'Bonus',
                    contribution_value INTEGER NOT NULL DEFAULT 1,
                    scope TEXT NOT NULL DEFAULT 'all',
                    created_at REAL NOT NULL,
                    completed_at REAL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS bonus_exemptions (
                    bonus_task_id INTEGER PRIMARY KEY,
                    granted_at REAL NOT NULL,
                    expires_at REAL NOT NULL,
                    scope TEXT NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS bonus_ledger (
                    id INTEGER PRIMARY KEY CHECK (id = 1),
                    grace_days INTEGER NOT NULL DEFAULT 0,
                    last_grace_earned_at REAL NOT NULL DEFAULT 0,
                    bonus_task_count INTEGER NOT NULL DEFAULT 0
                )
                """
            )
            add_missing_columns(cur, "bonus_ledger", {"grace_cover_until": "REAL NOT NULL DEFAULT 0"})
            cur.execute("INSERT OR IGNORE INTO bonus_ledger(id) VALUES (1)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_exemptions_expiry ON bonus_exemptions(expires_at)")

    # ---- helpers ----

    @staticmethod
    def _row_to_bonus_task(row: sqlite3.Row) -> BonusTask:
        return BonusTask(
            id=int(row["id"]),
            title=str(row["title"]),
            description=row["description"],
            category=str(row["category"]),
            contribution_value=int(row["contribution_value"]),
            scope=str(row["scope"]),
            created_at=float(row["created_at"]),
            completed_at=float(row["completed_at"]) if row["completed_at"] is not None else None,
        )

    @staticmethod
    def _row_to_exemption(row: sqlite3.Row) -> Exemption:
        return Exemption(
            bonus_task_id=int(row["bonus_task_id"]),
            granted_at=float(row["granted_at"]),
            expires_at=float(row["expires_at"]),
            scope=str(row["scope"]),
        )

    @staticmethod
    def _ledger(conn: sqlite3.Connection) -> sqlite3.Row:
        return conn.execute("SELECT * FROM bonus_ledger WHERE id = 1").fetchone()

    def _add_grace_day_in(self, conn: sqlite3.Connection, earned_at: float) -> bool:
        cur = conn.execute(
            """
            UPDATE bonus_ledger
            SET grace_days = grace_days + 1, last_grace_earned_at = ?
            WHERE id = 1 AND grace_days < ?
            """,
            (float(earned_at), self._max_grace_days),
        )
        return cur.rowcount == 1

    def _exchange_in(self, conn: sqlite3.Connection, now_ts: float) -> bool:
        ledger = self._ledger(conn)
        if int(ledger["bonus_task_count"]) < self._bonus_tasks_for_grace:
            return False
        if not self._add_grace_day_in(conn, now_ts):
            return False
        conn.execute(
            "UPDATE bonus_ledger SET bonus_task_count = bonus_task_count - ? WHERE id = 1",
            (self._bonus_tasks_for_grace,),
        )
        return True

    # ---- bonus tasks ----

    def add_bonus_task(
        self,
        *,
        title: str,
        description: str | None = None,
        category: str = "Bonus",
        contribution_value: int = 1,
        scope: str = SCOPE_ALL,
    ) -> int:
        if not title or not title.strip():
            raise ValueError("title is required")
        with open_db(self._db_path) as conn:
            cur = conn.execute(
                """
                INSERT INTO bonus_tasks(title, description, category, contribution_value, scope, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    title.strip(),
                    description,
                    category,
                    max(1, int(contribution_value)),
                    normalize_scope(scope),
                    self._clock.wall(),
                ),
            )
            rowid = cur.lastrowid
        if rowid is None:
            raise RuntimeError("SQLite did not return lastrowid for bonus_tasks insert")
        return int(rowid)

    def get_bonus_task(self, bonus_task_id: int) -> BonusTask | None:
        with open_db(self._db_path) as conn:
            row = conn.execute("SELECT * FROM bonus_tasks WHERE id = ?", (int(bonus_task_id),)).fetchone()
        return self._row_to_bonus_task(row) if row else None

    def list_bonus_tasks(self) -> list[BonusTask]:
        with open_db(self._db_path) as conn:
            rows = conn.execute("SELECT * FROM bonus_tasks ORDER BY id ASC").fetchall()
        return [self._row_to_bonus_task(r) for r in rows]

    def complete_bonus_task(self, bonus_task_id: int, now_ts: float | None = None) -> Exemption:
        """
        Record a bonus completion and return its exemption.

        Idempotent: completing the same bonus task again returns the exemption
        granted the first time; credits and the window are not applied twice.
        """
        if now_ts is None:
            now_ts = self._clock.wall()

        with self._lock, open_db(self._db_path, immediate=True) as conn:
            row = conn.execute("SELECT * FROM bonus_tasks WHERE id = ?", (int(bonus_task_id),)).fetchone()
            if row is None:
                raise KeyError(f"unknown bonus task {bonus_task_id}")
            task = self._row_to_bonus_task(row)

            first = (
                conn.execute(
                    "UPDATE bonus_tasks SET completed_at = ? WHERE id = ? AND completed_at IS NULL",
                    (float(now_ts), task.id),
                ).rowcount
                == 1
            )
            granted_at = float(now_ts) if first else float(task.completed_at or now_ts)
            conn.execute(
                """
                INSERT OR IGNORE INTO bonus_exemptions(bonus_task_id, granted_at, expires_at, scope)
                VALUES (?, ?, ?, ?)
                """,
                (task.id, granted_at, granted_at + self._exemption_seconds, task.scope),
            )
            exchanged = False
            if first:
                conn.execute("UPDATE bonus_ledger SET bonus_task_count = bonus_task_count + 1 WHERE id = 1")
                exchanged = self._exchange_in(conn, float(now_ts))
            ex_row = conn.execute(
                "SELECT * FROM bonus_exemptions WHERE bonus_task_id = ?", (task.id,)
            ).fetchone()

        exemption = self._row_to_exemption(ex_row)
        if first:
            logger.info(
                "Bonus task %s completed: exemption scope=%s until=%s grace_exchanged=%s",
                task.id,
                exemption.scope,
                exemption.expires_at,
                exchanged,
            )
        else:
            logger.debug("Bonus task %s already completed; exemption unchanged", task.id)
        return exemption

    # ---- exemptions (read side) ----

    def active_exemptions(self, now_ts: float) -> list[Exemption]:
        with open_db(self._db_path) as conn:
            rows = conn.execute(
                """
                SELECT * FROM bonus_exemptions
                WHERE granted_at <= ? AND expires_at > ?
                ORDER BY expires_at ASC
                """,
                (float(now_ts), float(now_ts)),
            ).fetchall()
        return [self._row_to_exemption(r) for r in rows]

    # ---- grace days / credits ----

    def get_grace_days(self) -> int:
        with open_db(self._db_path) as conn:
            return int(self._ledger(conn)["grace_days"])

    def get_bonus_task_count(self) -> int:
        with open_db(self._db_path) as conn:
            return int(self._ledger(conn)["bonus_task_count"])

    def get_required_bonus_for_grace(self) -> int:
        return self._bonus_tasks_for_grace

    def add_grace_day(self, earned_at: float | None = None) -> bool:
        if earned_at is None:
            earned_at = self._clock.wall()
        with self._lock, open_db(self._db_path, immediate=True) as conn:
            return self._add_grace_day_in(conn, earned_at)

    def consume_grace_day(self, cover_until: float | None = None) -> bool:
        """
        Spend one grace day. With cover_until, escalation stays suspended
        until that time (see is_grace_covering).
        """
        with self._lock, open_db(self._db_path, immediate=True) as conn:
            cur = conn.execute(
                """
                UPDATE bonus_ledger
                SET grace_days = grace_days - 1,
                    grace_cover_until = MAX(grace_cover_until, ?)
                WHERE id = 1 AND grace_days > 0
                """,
                (float(cover_until or 0.0),),
            )
            consumed = cur.rowcount == 1
        if consumed:
            logger.info("Grace day consumed (cover_until=%s)", cover_until)
        return consumed

    def refund_grace_day(self) -> bool:
        """Give back a grace day spent on something that did not happen. Keeps the expiry clock."""
        with self._lock, open_db(self._db_path, immediate=True) as conn:
            cur = conn.execute(
                "UPDATE bonus_ledger SET grace_days = grace_days + 1 WHERE id = 1 AND grace_days < ?",
                (self._max_grace_days,),
            )
            refunded = cur.rowcount == 1
        if refunded:
            logger.info("Grace day refunded")
        return refunded

    def is_grace_covering(self, now_ts: float) -> bool:
        with open_db(self._db_path) as conn:
            return float(self._ledger(conn)["grace_cover_until"]) > now_ts

    def try_exchange_bonus_for_grace(self, now_ts: float | None = None) -> bool:
        if now_ts is None:
            now_ts = self._clock.wall()
        with self._lock, open_db(self._db_path, immediate=True) as conn:
            return self._exchange_in(conn, now_ts)

    def check_expiry(self, now_ts: float | None = None) -> bool:
        """Drop all grace days once the newest one is older than the expiry window."""
        if now_ts is None:
            now_ts = self._clock.wall()
        with self._lock, open_db(self._db_path, immediate=True) as conn:
            cur = conn.execute(
                """
                UPDATE bonus_ledger
                SET grace_days = 0
                WHERE id = 1
                  AND grace_days > 0
                  AND last_grace_earned_at > 0
                  AND ? - last_grace_earned_at > ?
                """,
                (float(now_ts), self._grace_expiry_seconds),
            )
            expired = cur.rowcount == 1
        if expired:
            logger.info("Grace days expired")
        return expired
