"""Periodic tick source for a timer engine."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

from study_guardian.focus.models import TimerState
from study_guardian.focus.timer import TimerEngine

logger = logging.getLogger(__name__)


class TimerDriver:
    """Owns the one-second trigger that feeds ``TimerEngine.tick()``.

    Each wake-up converts the monotonic time elapsed since the last tick into
    whole seconds and delivers that many ticks in order. A stalled loop
    therefore catches up with a burst rather than losing time.
    """

    def __init__(
        self,
        engine: TimerEngine,
        interval: float = 1.0,
        monotonic: Callable[[], float] | None = None,
    ):
        self.engine = engine
        self._interval = interval
        self._monotonic = monotonic or time.monotonic
        self._task: asyncio.Task | None = None
        self._running = False
        self._last_tick: float | None = None

        # Fired after each wake-up that delivered at least one tick
        self.on_tick: Callable[[TimerState], None] | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the tick loop."""
        if self._running:
            return

        self._running = True
        self._last_tick = self._monotonic()
        self._task = asyncio.create_task(self._tick_loop())
        logger.debug(f"Timer driver started (every {self._interval}s)")

    async def stop(self) -> None:
        """Stop the tick loop."""
        if not self._running:
            return

        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.debug("Timer driver stopped")

    def pump(self) -> int:
        """Deliver every whole second elapsed since the last tick.

        Returns the number of ticks delivered.
        """
        now = self._monotonic()
        if self._last_tick is None:
            self._last_tick = now
            return 0

        due = int(now - self._last_tick)
        for _ in range(due):
            self.engine.tick()
        self._last_tick += due

        if due and self.on_tick:
            try:
                self.on_tick(self.engine.state)
            except Exception as e:
                logger.error(f"Error in on_tick callback: {e}")
        return due

    async def _tick_loop(self) -> None:
        """Main timer tick loop."""
        try:
            while self._running:
                await asyncio.sleep(self._interval)
                self.pump()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Error in timer tick loop: {e}")
            self._running = False
