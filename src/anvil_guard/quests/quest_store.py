# src/anvil_guard/quests/quest_store.py

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

from ..storage.db import open_db
from .quest_models import Quest, QuestCategory, QuestType

logger = logging.getLogger(__name__)


class QuestStore:
    """SQLite quest store. Each method opens its own connection."""

    def __init__(self, db_path: str | Path = "anvil.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        with open_db(self._db_path) as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS quests (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL,
                    quest_type TEXT NOT NULL,
                    category TEXT NOT NULL,
                    target_value INTEGER NOT NULL,
                    current_value INTEGER NOT NULL DEFAULT 0,
                    reward_coins INTEGER NOT NULL DEFAULT 0,
                    reward_xp INTEGER NOT NULL DEFAULT 0,
                    is_completed INTEGER NOT NULL DEFAULT 0,
                    is_active INTEGER NOT NULL DEFAULT 1,
                    week_chain_id TEXT,
                    week_chain_step INTEGER NOT NULL DEFAULT 0,
                    created_at REAL NOT NULL,
                    expires_at REAL NOT NULL,
                    completed_at REAL
                )
                """
            )
            # One row per (chain, step): a concurrent second generation inserts nothing.
            conn.execute(
                "CREATE UNIQUE INDEX IF NOT EXISTS idx_quests_chain_step "
                "ON quests(week_chain_id, week_chain_step) WHERE week_chain_id IS NOT NULL"
            )

    @staticmethod
    def _row_to_quest(row: sqlite3.Row) -> Quest:
        return Quest(
            id=int(row["id"]),
            title=str(row["title"]),
            description=str(row["description"]),
            quest_type=QuestType(row["quest_type"]),
            category=QuestCategory(row["category"]),
            target_value=int(row["target_value"]),
            current_value=int(row["current_value"]),
            reward_coins=int(row["reward_coins"]),
            reward_xp=int(row["reward_xp"]),
            is_completed=bool(row["is_completed"]),
            is_active=bool(row["is_active"]),
            week_chain_id=row["week_chain_id"],
            week_chain_step=int(row["week_chain_step"]),
            created_at=float(row["created_at"]),
            expires_at=float(row["expires_at"]),
            completed_at=float(row["completed_at"]) if row["completed_at"] is not None else None,
        )

    def insert_all(self, quests: list[Quest]) -> None:
        with open_db(self._db_path) as conn:
            conn.executemany(
                """
                INSERT OR IGNORE INTO quests(
                    title, description, quest_type, category, target_value, current_value,
                    reward_coins, reward_xp, is_completed, is_active,
                    week_chain_id, week_chain_step, created_at, expires_at, completed_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        q.title,
                        q.description,
                        q.quest_type.value,
                        q.category.value,
                        q.target_value,
                        q.current_value,
                        q.reward_coins,
                        q.reward_xp,
                        int(q.is_completed),
                        int(q.is_active),
                        q.week_chain_id,
                        q.week_chain_step,
                        q.created_at,
                        q.expires_at,
                        q.completed_at,
                    )
                    for q in quests
                ],
            )

    def cleanup_expired(self, now_ts: float) -> int:
        with open_db(self._db_path) as conn:
            cur = conn.execute(
                "DELETE FROM quests WHERE expires_at < ? AND is_completed = 0", (float(now_ts),)
            )
            return cur.rowcount

    def get_daily_quests_since(self, start_of_day: float) -> list[Quest]:
        with open_db(self._db_path) as conn:
            rows = conn.execute(
                """
                SELECT * FROM quests
                WHERE quest_type = 'daily' AND is_active = 1 AND created_at >= ?
                ORDER BY id ASC
                """,
                (float(start_of_day),),
            ).fetchall()
        return [self._row_to_quest(r) for r in rows]

    def has_weekly_chain(self, chain_id: str) -> bool:
        with open_db(self._db_path) as conn:
            row = conn.execute(
                "SELECT 1 FROM quests WHERE week_chain_id = ? LIMIT 1", (chain_id,)
            ).fetchone()
        return row is not None

    def list_active(self, now_ts: float) -> list[Quest]:
        with open_db(self._db_path) as conn:
            rows = conn.execute(
                """
                SELECT * FROM quests
                WHERE is_active = 1 AND expires_at > ?
                ORDER BY quest_type ASC, week_chain_step ASC, id ASC
                """,
                (float(now_ts),),
            ).fetchall()
        return [self._row_to_quest(r) for r in rows]
