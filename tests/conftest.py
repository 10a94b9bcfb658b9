# tests/conftest.py

from __future__ import annotations

from datetime import timezone
from pathlib import Path
from types import SimpleNamespace

import pytest

from anvil_guard.cli.bootstrap import create_initial_state
from anvil_guard.core.state import AppState

from .fakes import DAY, FakeClock, FakeNotifier


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with the composition root.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="anvil-test",
        log_level="DEBUG",
        console_enabled=False,
        # Paths (tmp per test run)
        data_dir=tmp_path,
        db_path=tmp_path / "anvil.sqlite3",
        # Calendar
        timezone_name="UTC",
        timezone=timezone.utc,
        # Penalty
        penalty_seconds=float(DAY),
        tamper_tolerance_seconds=60.0,
        penalize_clock_tamper=True,
        # Bonus / grace
        max_grace_days=3,
        grace_expiry_seconds=7.0 * DAY,
        bonus_tasks_for_grace=5,
        bonus_exemption_seconds=3600.0,
        # Workers
        worker_interval_seconds=900.0,
        retry_max_attempts=3,
        retry_backoff_seconds=0.0,
        streak_freeze_enabled=True,
        # Notifications
        matrix_enabled=False,
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture()
def state(settings: SimpleNamespace, clock: FakeClock, notifier: FakeNotifier) -> AppState:
    """
    AppState wired with deterministic fakes.

    NOTE: We keep real SQLite stores here because their queries are part of
    what the policy tests exercise.
    """
    return create_initial_state(settings=settings, clock=clock, notifier=notifier)
