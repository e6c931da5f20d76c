"""Time sources for the timer engine."""

from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Protocol


class Clock(Protocol):
    """Non-decreasing time source. Implementations must never raise."""

    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall-clock anchored once, then advanced by the monotonic counter.

    Readings keep moving forward even if the system clock is adjusted
    while a session is running.
    """

    def __init__(
        self,
        wall: Callable[[], datetime] | None = None,
        monotonic: Callable[[], float] | None = None,
    ) -> None:
        self._wall = wall or (lambda: datetime.now(timezone.utc))
        self._monotonic = monotonic or time.monotonic
        self._anchor_wall = self._wall()
        self._anchor_monotonic = self._monotonic()

    def now(self) -> datetime:
        elapsed = max(0.0, self._monotonic() - self._anchor_monotonic)
        return self._anchor_wall + timedelta(seconds=elapsed)


class ManualClock:
    """Deterministic clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self._now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._now

    def advance(self, seconds: float) -> datetime:
        if seconds < 0:
            raise ValueError("ManualClock cannot move backwards")
        self._now += timedelta(seconds=seconds)
        return self._now


__all__ = ["Clock", "ManualClock", "SystemClock"]
