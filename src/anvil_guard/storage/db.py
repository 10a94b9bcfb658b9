# src/anvil_guard/storage/db.py

"""
SQLite connection helper shared by all stores.

Each store method opens its own short-lived connection (no shared cursors),
so stores are safe to call from several threads. Every sqlite3 error is
surfaced as StoreUnavailableError.
"""

from __future__ import annotations

import contextlib
import logging
import sqlite3
from collections.abc import Iterator
from pathlib import Path

from ..errors import StoreUnavailableError

logger = logging.getLogger(__name__)


def _configure_conn(conn: sqlite3.Connection) -> None:
    with contextlib.suppress(sqlite3.Error):
        conn.execute("PRAGMA journal_mode=WAL")


@contextlib.contextmanager
def open_db(db_path: Path, *, immediate: bool = False) -> Iterator[sqlite3.Connection]:
    """
    Yield a connection; commit on success, roll back on error.

    immediate=True takes the write lock up front (BEGIN IMMEDIATE) so a
    read-modify-write sequence runs as a single writer transaction.
    """
    conn: sqlite3.Connection | None = None
    try:
        conn = sqlite3.connect(str(db_path), timeout=30.0, isolation_level=None)
        conn.row_factory = sqlite3.Row
        _configure_conn(conn)
        conn.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
        yield conn
        conn.execute("COMMIT")
    except sqlite3.Error as e:
        if conn is not None:
            with contextlib.suppress(sqlite3.Error):
                conn.execute("ROLLBACK")
        logger.warning("SQLite error on %s: %r", db_path, e)
        raise StoreUnavailableError(f"store unavailable: {e}") from e
    except BaseException:
        if conn is not None:
            with contextlib.suppress(sqlite3.Error):
                conn.execute("ROLLBACK")
        raise
    finally:
        if conn is not None:
            conn.close()


def add_missing_columns(cur: sqlite3.Cursor, table: str, columns: dict[str, str]) -> None:
    """Safe migration: ALTER TABLE ADD COLUMN for every column the table lacks."""
    cur.execute(f"PRAGMA table_info({table})")
    existing = {row["name"] for row in cur.fetchall()}
    for name, decl in columns.items():
        if name in existing:
            continue
        cur.execute(f"ALTER TABLE {table} ADD COLUMN {name} {decl}")
        logger.info("%s migration: added column %s", table, name)
