# tests/test_calendar.py

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from anvil_guard.config import Settings
from anvil_guard.core.calendar import LocalCalendar
from anvil_guard.errors import ConfigError

from .fakes import DAY, HOUR, T0

MIDNIGHT = T0 - 12 * HOUR


def test_utc_day_boundaries() -> None:
    cal = LocalCalendar("UTC")

    assert cal.day_key(T0) == "2026-10-14"
    assert cal.start_of_day(T0) == MIDNIGHT
    assert cal.start_of_next_day(T0) == MIDNIGHT + DAY
    assert cal.start_of_yesterday(T0) == MIDNIGHT - DAY


def test_explicit_timezone_moves_the_day_boundary() -> None:
    cal = LocalCalendar("Asia/Tokyo")

    # 12:00 UTC is 21:00 in Tokyo, 16:00 UTC is already the next day there.
    assert cal.day_key(T0) == "2026-10-14"
    assert cal.day_key(T0 + 4 * HOUR) == "2026-10-15"
    assert cal.same_day(T0, T0 + 4 * HOUR) is False
    assert LocalCalendar("UTC").same_day(T0, T0 + 4 * HOUR) is True


def test_roll_forward_keeps_time_of_day() -> None:
    cal = LocalCalendar("UTC")
    yesterday_evening = MIDNIGHT - 6 * HOUR  # 18:00 yesterday

    assert cal.roll_forward(yesterday_evening, T0) == MIDNIGHT + 18 * HOUR
    assert cal.roll_forward(yesterday_evening - 3 * DAY, T0) == MIDNIGHT + 18 * HOUR
    assert cal.roll_forward(T0 + HOUR, T0) == T0 + HOUR


def test_iso_week_helpers() -> None:
    cal = LocalCalendar("UTC")

    assert cal.week_chain_id(T0) == "week_2026_42"
    assert cal.end_of_week(T0) == datetime(2026, 10, 19, tzinfo=timezone.utc).timestamp()


def test_unknown_timezone_is_a_config_error(monkeypatch) -> None:
    monkeypatch.setenv("ANVIL_TIMEZONE", "Mars/Olympus_Mons")

    with pytest.raises(ConfigError):
        Settings.from_env()


def test_settings_defaults(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("ANVIL_TIMEZONE", "Europe/Berlin")
    monkeypatch.setenv("ANVIL_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("ANVIL_PENALTY_SECONDS", "not-a-number")
    monkeypatch.delenv("ANVIL_DB_PATH", raising=False)

    s = Settings.from_env()

    assert s.timezone_name == "Europe/Berlin"
    assert s.db_path == tmp_path / "anvil.sqlite3"
    assert s.penalty_seconds == DAY
    assert s.tamper_tolerance_seconds >= 0
