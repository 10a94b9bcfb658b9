# src/anvil_guard/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app, built once in the composition root.
- No secrets required at import time.
- The timezone that anchors "local midnight" is an explicit setting.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import tzinfo
from pathlib import Path

from dotenv import load_dotenv

from .core.calendar import resolve_timezone
from .errors import ConfigError

ENV_PREFIX = "ANVIL"

DAY_SECONDS = 24 * 60 * 60


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str
    console_enabled: bool

    # ---- Local data ----
    data_dir: Path
    db_path: Path

    # ---- Calendar ----
    timezone_name: str
    timezone: tzinfo

    # ---- Penalty ----
    penalty_seconds: float
    tamper_tolerance_seconds: float
    penalize_clock_tamper: bool

    # ---- Bonus / grace ----
    max_grace_days: int
    grace_expiry_seconds: float
    bonus_tasks_for_grace: int
    bonus_exemption_seconds: float

    # ---- Workers ----
    worker_interval_seconds: float
    retry_max_attempts: int
    retry_backoff_seconds: float
    streak_freeze_enabled: bool

    # ---- Matrix notifications ----
    matrix_enabled: bool
    matrix_homeserver: str
    matrix_user_id: str
    matrix_password: str
    matrix_room: str
    matrix_store_path: Path

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "anvil") or "anvil"
        log_level = _env(_k("LOG_LEVEL"), "INFO")
        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/anvil"))
        db_path = _env_path(_k("DB_PATH"), data_dir / "anvil.sqlite3")

        timezone_name = _env(_k("TIMEZONE"), "UTC").strip() or "UTC"
        try:
            timezone = resolve_timezone(timezone_name)
        except Exception as e:
            raise ConfigError(f"Unknown timezone {timezone_name!r} in {_k('TIMEZONE')}") from e

        penalty_seconds = _env_float(_k("PENALTY_SECONDS"), float(DAY_SECONDS))
        tamper_tolerance_seconds = _env_float(_k("TAMPER_TOLERANCE_SECONDS"), 60.0)
        penalize_clock_tamper = _env_bool(_k("PENALIZE_CLOCK_TAMPER"), True)

        max_grace_days = _env_int(_k("MAX_GRACE_DAYS"), 3)
        grace_expiry_seconds = _env_float(_k("GRACE_EXPIRY_SECONDS"), 7.0 * DAY_SECONDS)
        bonus_tasks_for_grace = _env_int(_k("BONUS_TASKS_FOR_GRACE"), 5)
        bonus_exemption_seconds = _env_float(_k("BONUS_EXEMPTION_SECONDS"), 3600.0)

        worker_interval_seconds = _env_float(_k("WORKER_INTERVAL_SECONDS"), 900.0)
        retry_max_attempts = _env_int(_k("RETRY_MAX_ATTEMPTS"), 3)
        retry_backoff_seconds = _env_float(_k("RETRY_BACKOFF_SECONDS"), 30.0)
        streak_freeze_enabled = _env_bool(_k("STREAK_FREEZE_ENABLED"), True)

        matrix_enabled = _env_bool(_k("MATRIX_ENABLED"), False)
        matrix_homeserver = _env(_k("MATRIX_HOMESERVER")).strip()
        matrix_user_id = _env(_k("MATRIX_USER_ID")).strip()
        matrix_password = _env(_k("MATRIX_PASSWORD")).strip()
        matrix_room = _env(_k("MATRIX_ROOM")).strip()
        matrix_store_path = _env_path(_k("MATRIX_STORE_PATH"), data_dir / "matrix_store")

        return Settings(
            app_name=app_name,
            log_level=log_level,
            console_enabled=console_enabled,
            data_dir=data_dir,
            db_path=db_path,
            timezone_name=timezone_name,
            timezone=timezone,
            penalty_seconds=max(1.0, penalty_seconds),
            tamper_tolerance_seconds=max(0.0, tamper_tolerance_seconds),
            penalize_clock_tamper=penalize_clock_tamper,
            max_grace_days=max(0, max_grace_days),
            grace_expiry_seconds=max(0.0, grace_expiry_seconds),
            bonus_tasks_for_grace=max(1, bonus_tasks_for_grace),
            bonus_exemption_seconds=max(0.0, bonus_exemption_seconds),
            worker_interval_seconds=max(1.0, worker_interval_seconds),
            retry_max_attempts=max(1, retry_max_attempts),
            retry_backoff_seconds=max(0.0, retry_backoff_seconds),
            streak_freeze_enabled=streak_freeze_enabled,
            matrix_enabled=matrix_enabled,
            matrix_homeserver=matrix_homeserver,
            matrix_user_id=matrix_user_id,
            matrix_password=matrix_password,
            matrix_room=matrix_room,
            matrix_store_path=matrix_store_path,
        )


def get_settings() -> Settings:
    """Load .env (if present) and build Settings from the environment."""
    load_dotenv(override=False)
    return Settings.from_env()
