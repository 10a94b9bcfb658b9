# src/anvil_guard/penalty/penalty_manager.py

"""
Anti-tamper penalty state machine.

States: Inactive, Active(until).

Elapsed time is measured with the monotonic (boot-time) clock against a
persisted anchor pair (wall time, monotonic time). The remaining penalty
duration is kept in monotonic terms and decremented on every observation,
so moving the wall clock in either direction never shortens a penalty.
The wall clock only projects `penalty_active_until` for display.

Observation outcomes:
- normal:   monotonic advanced, wall advanced by roughly the same amount.
- tamper:   wall advanced less than monotonic by more than the tolerance
            (clock rolled back). Recorded; remaining time is unaffected.
- reboot:   monotonic is below the anchor. Elapsed time since the previous
            observation is unknown, so nothing is credited; the next
            observation continues from the new anchor.

is_penalty_active() is the hot path. While the persisted anchor is fresh
(both clocks moved forward within the refresh window) it answers from a
plain read without taking the write lock. Remaining time still counts from
the persisted anchor, so skipping the write loses nothing.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from dataclasses import dataclass, replace
from pathlib import Path

from ..core.ports import Clock
from ..storage.db import open_db

logger = logging.getLogger(__name__)

DEFAULT_PENALTY_SECONDS = 24 * 60 * 60
DEFAULT_TAMPER_TOLERANCE_SECONDS = 60.0
DEFAULT_REFRESH_SECONDS = 5.0


@dataclass(frozen=True, slots=True)
class PenaltyState:
    last_system_time: float | None = None
    last_elapsed_realtime: float | None = None
    penalty_active_until: float | None = None
    remaining_seconds: float = 0.0
    violation_count: int = 0
    tamper_count: int = 0
    tamper_flag: bool = False

    @property
    def active(self) -> bool:
        return self.penalty_active_until is not None and self.remaining_seconds > 0


@dataclass(frozen=True, slots=True)
class Observation:
    active: bool
    remaining_seconds: float
    tampered: bool = False
    rebooted: bool = False


def advance(
    state: PenaltyState, wall: float, mono: float, tolerance: float
) -> tuple[PenaltyState, Observation]:
    """Fold one (wall, monotonic) observation into the state. Pure."""
    tampered = False
    rebooted = False
    elapsed = 0.0

    if state.last_system_time is not None and state.last_elapsed_realtime is not None:
        if mono < state.last_elapsed_realtime:
            rebooted = True
        else:
            elapsed = mono - state.last_elapsed_realtime
            wall_delta = wall - state.last_system_time
            if wall_delta < elapsed - tolerance:
                tampered = True

    remaining = state.remaining_seconds
    until = state.penalty_active_until
    if state.active:
        remaining = max(0.0, remaining - elapsed)
        until = wall + remaining if remaining > 0 else None
    else:
        remaining = 0.0
        until = None

    new_state = replace(
        state,
        last_system_time=wall,
        last_elapsed_realtime=mono,
        penalty_active_until=until,
        remaining_seconds=remaining,
        tamper_count=state.tamper_count + (1 if tampered else 0),
        tamper_flag=state.tamper_flag or tampered,
    )
    return new_state, Observation(
        active=new_state.active,
        remaining_seconds=remaining,
        tampered=tampered,
        rebooted=rebooted,
    )


class PenaltyManager:
    """
    Owns the persisted penalty anchor.

    Every read-modify-write runs under an in-process lock and inside a
    BEGIN IMMEDIATE transaction, so concurrent trigger/observe calls (also
    from other processes sharing the database) serialize on one writer.
    """

    def __init__(
        self,
        db_path: str | Path,
        clock: Clock,
        *,
        tolerance_seconds: float = DEFAULT_TAMPER_TOLERANCE_SECONDS,
        default_duration_seconds: float = DEFAULT_PENALTY_SECONDS,
        refresh_seconds: float = DEFAULT_REFRESH_SECONDS,
    ) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._clock = clock
        self._tolerance = float(tolerance_seconds)
        self._default_duration = float(default_duration_seconds)
        self._refresh = max(0.0, float(refresh_seconds))
        self._lock = threading.Lock()
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        with open_db(self._db_path) as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS penalty_state (
                    id INTEGER PRIMARY KEY CHECK (id = 1),
                    last_system_time REAL,
                    last_elapsed_realtime REAL,
                    penalty_active_until REAL,
                    remaining_seconds REAL NOT NULL DEFAULT 0,
                    violation_count INTEGER NOT NULL DEFAULT 0,
                    tamper_count INTEGER NOT NULL DEFAULT 0,
                    tamper_flag INTEGER NOT NULL DEFAULT 0
                )
                """
            )
            conn.execute("INSERT OR IGNORE INTO penalty_state(id) VALUES (1)")

    # ---- persistence ----

    @staticmethod
    def _load(conn: sqlite3.Connection) -> PenaltyState:
        row = conn.execute("SELECT * FROM penalty_state WHERE id = 1").fetchone()
        if row is None:
            return PenaltyState()
        return PenaltyState(
            last_system_time=row["last_system_time"],
            last_elapsed_realtime=row["last_elapsed_realtime"],
            penalty_active_until=row["penalty_active_until"],
            remaining_seconds=float(row["remaining_seconds"] or 0.0),
            violation_count=int(row["violation_count"] or 0),
            tamper_count=int(row["tamper_count"] or 0),
            tamper_flag=bool(row["tamper_flag"]),
        )

    @staticmethod
    def _save(conn: sqlite3.Connection, state: PenaltyState) -> None:
        conn.execute(
            """
            UPDATE penalty_state
            SET last_system_time = ?, last_elapsed_realtime = ?,
                penalty_active_until = ?, remaining_seconds = ?,
                violation_count = ?, tamper_count = ?, tamper_flag = ?
            WHERE id = 1
            """,
            (
                state.last_system_time,
                state.last_elapsed_realtime,
                state.penalty_active_until,
                state.remaining_seconds,
                state.violation_count,
                state.tamper_count,
                int(state.tamper_flag),
            ),
        )

    def _observe_in(self, conn: sqlite3.Connection) -> tuple[PenaltyState, Observation]:
        prev = self._load(conn)
        state, obs = advance(prev, self._clock.wall(), self._clock.monotonic(), self._tolerance)
        if obs.tampered:
            logger.warning(
                "Clock tamper detected: wall moved back relative to monotonic time (penalty_active=%s)",
                obs.active,
            )
        if obs.rebooted:
            logger.warning("Reboot detected: re-anchoring, no elapsed time credited")
        if prev.active and not obs.active:
            logger.info("Penalty expired")
        return state, obs

    # ---- public API ----

    def observe(self) -> Observation:
        """Take one observation and persist the new anchor."""
        with self._lock, open_db(self._db_path, immediate=True) as conn:
            state, obs = self._observe_in(conn)
            self._save(conn, state)
        return obs

    def is_penalty_active(self) -> bool:
        wall, mono = self._clock.wall(), self._clock.monotonic()
        prev = self.snapshot()
        if self._is_fresh(prev, wall, mono):
            _, obs = advance(prev, wall, mono, self._tolerance)
            if not obs.tampered:
                return obs.active
        return self.observe().active

    def _is_fresh(self, state: PenaltyState, wall: float, mono: float) -> bool:
        if state.last_system_time is None or state.last_elapsed_realtime is None:
            return False
        mono_delta = mono - state.last_elapsed_realtime
        wall_delta = wall - state.last_system_time
        return 0.0 <= mono_delta <= self._refresh and 0.0 <= wall_delta <= self._refresh

    def trigger_penalty(self, duration_seconds: float | None = None) -> float:
        """
        Start (or keep) a penalty for at least duration_seconds.

        An already-running longer penalty is never shortened.
        Returns the projected wall-clock end.
        """
        duration = self._default_duration if duration_seconds is None else float(duration_seconds)
        if duration <= 0:
            raise ValueError("penalty duration must be positive")

        with self._lock, open_db(self._db_path, immediate=True) as conn:
            state, obs = self._observe_in(conn)
            remaining = max(obs.remaining_seconds, duration) if obs.active else duration
            wall = state.last_system_time if state.last_system_time is not None else self._clock.wall()
            state = replace(
                state,
                penalty_active_until=wall + remaining,
                remaining_seconds=remaining,
                violation_count=state.violation_count + 1,
            )
            self._save(conn, state)

        logger.info(
            "Penalty triggered duration=%.0fs remaining=%.0fs violations=%d",
            duration,
            remaining,
            state.violation_count,
        )
        return float(state.penalty_active_until or 0.0)

    def clear_penalty(self) -> None:
        with self._lock, open_db(self._db_path, immediate=True) as conn:
            state, obs = self._observe_in(conn)
            self._save(conn, replace(state, penalty_active_until=None, remaining_seconds=0.0))
        if obs.active:
            logger.info("Penalty cleared")

    def consume_tamper_flag(self) -> bool:
        """Return True once per raised tamper flag (and lower it)."""
        with self._lock, open_db(self._db_path, immediate=True) as conn:
            state, _ = self._observe_in(conn)
            raised = state.tamper_flag
            self._save(conn, replace(state, tamper_flag=False))
        return raised

    def snapshot(self) -> PenaltyState:
        """Read the persisted state without observing."""
        with open_db(self._db_path) as conn:
            return self._load(conn)

    def get_last_system_time(self) -> float:
        return float(self.snapshot().last_system_time or 0.0)

    def get_last_elapsed_realtime(self) -> float:
        return float(self.snapshot().last_elapsed_realtime or 0.0)

    def get_penalty_end_time(self) -> float | None:
        return self.snapshot().penalty_active_until

    def get_violation_count(self) -> int:
        return self.snapshot().violation_count
