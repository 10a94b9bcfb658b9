# src/anvil_guard/core/clock.py

from __future__ import annotations

import time

_BOOTTIME = getattr(time, "CLOCK_BOOTTIME", None)


class SystemClock:
    """
    Real clocks.

    wall():      POSIX wall time, user-adjustable.
    monotonic(): seconds since boot, including suspend where the platform
                 exposes CLOCK_BOOTTIME. Resets to ~0 on reboot.
    """

    def wall(self) -> float:
        return time.time()

    def monotonic(self) -> float:
        if _BOOTTIME is not None:
            return time.clock_gettime(_BOOTTIME)
        return time.monotonic()
