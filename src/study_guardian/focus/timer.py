"""Pomodoro timer state machine with configurable durations."""

from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from typing import Any

from study_guardian.core.clock import Clock, SystemClock
from study_guardian.focus.errors import InvalidTransition
from study_guardian.focus.events import (
    EventListener,
    PhaseAborted,
    PhaseCompleted,
    PhaseReady,
    TimerEvent,
)
from study_guardian.focus.models import (
    Phase,
    RunState,
    SessionRecord,
    TimerConfiguration,
    TimerState,
)
from study_guardian.focus.phase_policy import PhaseTransition, next_phase

logger = logging.getLogger(__name__)


class TimerEngine:
    """Pomodoro timer state machine driven by external ticks.

    The engine never schedules anything itself. Whoever embeds it calls
    ``tick()`` once per elapsed second while it is running.

    Usage:
        engine = TimerEngine(TimerConfiguration())
        engine.subscribe(lambda event: print(event))

        engine.start()
        engine.tick()    # one second
        engine.pause()
        engine.resume()
        engine.stop()    # emits PhaseAborted
    """

    def __init__(
        self,
        configuration: TimerConfiguration | None = None,
        clock: Clock | None = None,
    ):
        self._clock = clock or SystemClock()
        configuration = configuration or TimerConfiguration()
        self._state = TimerState(
            configuration=configuration,
            remaining_seconds=configuration.work_duration_seconds,
        )
        self._listeners: list[EventListener] = []

    @property
    def state(self) -> TimerState:
        """Get current timer state (read-only copy)."""
        return replace(self._state)

    @property
    def configuration(self) -> TimerConfiguration:
        return self._state.configuration

    @property
    def run_state(self) -> RunState:
        return self._state.run_state

    @property
    def current_phase(self) -> Phase:
        return self._state.current_phase

    @property
    def cycle_index(self) -> int:
        return self._state.cycle_index

    @property
    def remaining_seconds(self) -> int:
        return self._state.remaining_seconds

    @property
    def time_remaining_display(self) -> str:
        return self._state.time_remaining_display

    def subscribe(self, listener: EventListener) -> None:
        """Register a listener for engine events."""
        self._listeners.append(listener)

    def unsubscribe(self, listener: EventListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def start(
        self,
        configuration: TimerConfiguration | None = None,
        preset_id: str | None = None,
    ) -> None:
        """Start a fresh run from the first work phase."""
        if self._state.run_state != RunState.IDLE:
            raise InvalidTransition("start", self._state.run_state)

        configuration = configuration or self._state.configuration
        self._state = TimerState(
            configuration=configuration,
            current_phase=Phase.WORK,
            cycle_index=1,
            remaining_seconds=configuration.work_duration_seconds,
            run_state=RunState.RUNNING,
            phase_started_at=self._clock.now(),
            preset_id=preset_id,
            pomodoros_completed=0,
        )
        logger.info(f"Timer started: work phase, {configuration.work_duration_seconds}s")

    def start_phase(self) -> None:
        """Run the currently loaded phase without resetting the cycle."""
        if self._state.run_state != RunState.IDLE:
            raise InvalidTransition("start phase", self._state.run_state)

        self._state.run_state = RunState.RUNNING
        self._state.phase_started_at = self._clock.now()
        logger.info(
            f"Phase started: {self._state.current_phase.value} (cycle {self._state.cycle_index})"
        )

    def pause(self) -> None:
        """Pause the timer."""
        if self._state.run_state != RunState.RUNNING:
            raise InvalidTransition("pause", self._state.run_state)

        self._state.run_state = RunState.PAUSED
        logger.info(f"Timer paused with {self._state.remaining_seconds}s remaining")

    def resume(self) -> None:
        """Resume a paused timer."""
        if self._state.run_state != RunState.PAUSED:
            raise InvalidTransition("resume", self._state.run_state)

        self._state.run_state = RunState.RUNNING
        logger.info("Timer resumed")

    def stop(self) -> SessionRecord:
        """Abort the current phase and return to idle.

        The phase and cycle are kept, so ``start_phase()`` can retry it.
        """
        if self._state.run_state == RunState.IDLE:
            raise InvalidTransition("stop", self._state.run_state)

        record = self._build_record(completed_normally=False)
        self._emit(PhaseAborted(record))

        self._state.remaining_seconds = self._state.planned_seconds
        self._state.run_state = RunState.IDLE
        self._state.phase_started_at = None
        logger.info(f"Timer stopped after {record.actual_duration_seconds}s of {record.phase.value}")
        return record

    def skip(self) -> SessionRecord:
        """End the current phase early and move on to the next one."""
        if self._state.run_state == RunState.IDLE:
            raise InvalidTransition("skip", self._state.run_state)

        record = self._build_record(completed_normally=False)
        self._emit(PhaseAborted(record))
        logger.info(f"Skipped {record.phase.value} after {record.actual_duration_seconds}s")
        self._advance()
        return record

    def reset(self) -> None:
        """Reset the entire run to the first work phase."""
        if self._state.run_state != RunState.IDLE:
            self._emit(PhaseAborted(self._build_record(completed_normally=False)))

        configuration = self._state.configuration
        self._state = TimerState(
            configuration=configuration,
            remaining_seconds=configuration.work_duration_seconds,
        )
        logger.info("Timer reset")

    def tick(self) -> None:
        """Advance the countdown by one second."""
        if self._state.run_state != RunState.RUNNING:
            return

        if self._state.remaining_seconds > 0:
            self._state.remaining_seconds -= 1

        if self._state.remaining_seconds == 0:
            self._complete_phase()

    def progress_fraction(self) -> float:
        """Share of the current phase already elapsed, in [0, 1]."""
        return self._state.progress_fraction

    def get_summary(self) -> dict[str, Any]:
        """Get a summary of the current run."""
        return {
            "phase": self._state.current_phase.value,
            "run_state": self._state.run_state.value,
            "cycle_index": self._state.cycle_index,
            "time_remaining": self._state.time_remaining_display,
            "progress": round(self._state.progress_fraction, 3),
            "pomodoros_completed": self._state.pomodoros_completed,
            "preset_id": self._state.preset_id,
            "phase_started_at": (
                self._state.phase_started_at.isoformat() if self._state.phase_started_at else None
            ),
        }

    def _complete_phase(self) -> None:
        """Handle phase completion and transition."""
        record = self._build_record(completed_normally=True)
        transition = next_phase(
            self._state.current_phase, self._state.cycle_index, self._state.configuration
        )
        if record.phase == Phase.WORK:
            self._state.pomodoros_completed += 1

        self._emit(PhaseCompleted(record, transition.phase, transition.next_cycle_index))
        logger.info(f"{record.phase.value} complete, next: {transition.phase.value}")
        self._advance(transition)

    def _advance(self, transition: PhaseTransition | None = None) -> None:
        """Load the next phase and apply the auto/manual advance rule."""
        if transition is None:
            transition = next_phase(
                self._state.current_phase, self._state.cycle_index, self._state.configuration
            )
        self._state.current_phase = transition.phase
        self._state.cycle_index = transition.next_cycle_index
        self._state.remaining_seconds = transition.duration_seconds

        if self._state.configuration.manual_advance:
            self._state.run_state = RunState.IDLE
            self._state.phase_started_at = None
            self._emit(
                PhaseReady(transition.phase, transition.next_cycle_index, transition.duration_seconds)
            )
        else:
            self._state.run_state = RunState.RUNNING
            self._state.phase_started_at = self._clock.now()

    def _build_record(self, completed_normally: bool) -> SessionRecord:
        ended_at = self._clock.now()
        planned = self._state.planned_seconds
        actual = planned - self._state.remaining_seconds
        return SessionRecord(
            idempotency_key=uuid.uuid4().hex,
            phase=self._state.current_phase,
            planned_duration_seconds=planned,
            actual_duration_seconds=actual,
            started_at=self._state.phase_started_at or ended_at,
            ended_at=ended_at,
            completed_normally=completed_normally,
            preset_id=self._state.preset_id,
            cycle_index=self._state.cycle_index,
        )

    def _emit(self, event: TimerEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Error in {type(event).__name__} listener: {e}")
