# tests/fakes.py

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

from anvil_guard.errors import NotificationError, StoreUnavailableError
from anvil_guard.workers.base import WorkResult

# Wednesday 2026-10-14 12:00 UTC (ISO week 42).
T0 = datetime(2026, 10, 14, 12, 0, tzinfo=timezone.utc).timestamp()
HOUR = 60 * 60
DAY = 24 * HOUR


class FakeClock:
    """
    Settable wall + monotonic clock.

    advance() moves both clocks together (real time passing); tests move one
    of them alone to simulate clock tampering or a reboot.
    """

    def __init__(self, wall: float = T0, mono: float = 10_000.0) -> None:
        self.wall_ts = float(wall)
        self.mono_ts = float(mono)

    def wall(self) -> float:
        return self.wall_ts

    def monotonic(self) -> float:
        return self.mono_ts

    def advance(self, seconds: float) -> None:
        self.wall_ts += seconds
        self.mono_ts += seconds


@dataclass(slots=True)
class SentNotification:
    title: str
    body: str


@dataclass(slots=True)
class FakeNotifier:
    sent: list[SentNotification] = field(default_factory=list)

    async def notify(self, *, title: str, body: str) -> None:
        self.sent.append(SentNotification(title=title, body=body))


class FailingNotifier:
    def __init__(self) -> None:
        self.calls = 0

    async def notify(self, *, title: str, body: str) -> None:
        self.calls += 1
        raise NotificationError("notifications are disabled")


class BrokenTaskRepo:
    """TaskRepo whose every call fails like an unreachable database."""

    def __getattr__(self, name: str):
        def _fail(*args, **kwargs):
            raise StoreUnavailableError(f"store unavailable: {name}")

        return _fail


class ScriptedWorker:
    """Worker that returns (or raises) the scripted outcomes in order."""

    def __init__(self, name: str, outcomes: list[WorkResult | Exception]) -> None:
        self.name = name
        self._outcomes = list(outcomes)
        self.attempts: list[int] = []

    async def run(self, attempt: int = 0) -> WorkResult:
        self.attempts.append(attempt)
        outcome = self._outcomes.pop(0) if self._outcomes else WorkResult.SUCCESS
        if isinstance(outcome, Exception):
            raise outcome
        return outcome
