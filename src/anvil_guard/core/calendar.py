# src/anvil_guard/core/calendar.py

"""
Local-day arithmetic.

Every "day" in the system (daily reset boundary, contribution date key,
same-day reminder suppression, quest expiry) is computed here, against one
explicitly configured timezone. Timestamps are POSIX seconds (float).
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo


def resolve_timezone(name: str) -> tzinfo:
    if name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


class LocalCalendar:
    def __init__(self, tz: tzinfo | str) -> None:
        self.tz = resolve_timezone(tz) if isinstance(tz, str) else tz

    def to_local(self, ts: float) -> datetime:
        return datetime.fromtimestamp(ts, tz=self.tz)

    def local_date(self, ts: float) -> date:
        return self.to_local(ts).date()

    def _midnight(self, d: date) -> float:
        return datetime.combine(d, time.min, tzinfo=self.tz).timestamp()

    def start_of_day(self, ts: float) -> float:
        return self._midnight(self.local_date(ts))

    def start_of_next_day(self, ts: float) -> float:
        return self._midnight(self.local_date(ts) + timedelta(days=1))

    def start_of_yesterday(self, ts: float) -> float:
        return self._midnight(self.local_date(ts) - timedelta(days=1))

    def day_key(self, ts: float) -> str:
        """Calendar day key, e.g. '2026-10-17'."""
        return self.local_date(ts).isoformat()

    def same_day(self, a: float, b: float) -> bool:
        return self.local_date(a) == self.local_date(b)

    def roll_forward(self, ts: float, not_before: float) -> float:
        """
        Move ts by whole local days (keeping its time of day) until it falls
        on or after the local day containing not_before.
        """
        local = self.to_local(ts)
        target = self.local_date(not_before)
        if local.date() >= target:
            return ts
        moved = datetime.combine(target, local.time(), tzinfo=self.tz)
        return moved.timestamp()

    def week_chain_id(self, ts: float) -> str:
        iso = self.local_date(ts).isocalendar()
        return f"week_{iso.year}_{iso.week}"

    def end_of_week(self, ts: float) -> float:
        """Start of next Monday (local), i.e. the exclusive end of the ISO week."""
        d = self.local_date(ts)
        return self._midnight(d + timedelta(days=7 - d.weekday()))
