"""Lifecycle events emitted by the timer engine."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Union

from study_guardian.focus.models import Phase, SessionRecord


@dataclass(frozen=True)
class PhaseCompleted:
    """The countdown reached zero."""
    record: SessionRecord
    next_phase: Phase
    next_cycle_index: int

    @property
    def phase(self) -> Phase:
        return self.record.phase


@dataclass(frozen=True)
class PhaseAborted:
    """The phase was stopped, skipped or reset before reaching zero."""
    record: SessionRecord

    @property
    def phase(self) -> Phase:
        return self.record.phase


@dataclass(frozen=True)
class PhaseReady:
    """Manual-advance mode: the next phase is loaded and waiting for the user."""
    phase: Phase
    cycle_index: int
    duration_seconds: int


TimerEvent = Union[PhaseCompleted, PhaseAborted, PhaseReady]
EventListener = Callable[[TimerEvent], None]
