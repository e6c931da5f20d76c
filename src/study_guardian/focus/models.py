"""Domain types for the focus timer."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any

from study_guardian.focus.errors import ConfigurationInvalid


class Phase(Enum):
    """One timed segment of a session."""
    WORK = "work"
    SHORT_BREAK = "short_break"
    LONG_BREAK = "long_break"

    @property
    def label(self) -> str:
        return _PHASE_LABELS[self]


_PHASE_LABELS = {
    Phase.WORK: "Focus session",
    Phase.SHORT_BREAK: "Short break",
    Phase.LONG_BREAK: "Long break",
}


class RunState(Enum):
    """Whether the countdown is advancing."""
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"


@dataclass(frozen=True)
class TimerConfiguration:
    """Durations and cycle structure for a timer run.

    All durations are in seconds. Invalid values raise ConfigurationInvalid
    at construction, so an engine can never hold a broken configuration.
    """
    work_duration_seconds: int = 25 * 60
    short_break_duration_seconds: int = 5 * 60
    long_break_duration_seconds: int = 15 * 60
    cycles_before_long_break: int = 4
    manual_advance: bool = False

    def __post_init__(self) -> None:
        for name in (
            "work_duration_seconds",
            "short_break_duration_seconds",
            "long_break_duration_seconds",
        ):
            value = getattr(self, name)
            if not _is_int(value) or value <= 0:
                raise ConfigurationInvalid(f"{name} must be a positive integer, got {value!r}")
        cycles = self.cycles_before_long_break
        if not _is_int(cycles) or cycles < 2:
            raise ConfigurationInvalid(
                f"cycles_before_long_break must be an integer >= 2, got {cycles!r}"
            )

    def duration_for(self, phase: Phase) -> int:
        """Configured duration in seconds for a phase."""
        if phase == Phase.WORK:
            return self.work_duration_seconds
        elif phase == Phase.SHORT_BREAK:
            return self.short_break_duration_seconds
        else:
            return self.long_break_duration_seconds

    def with_manual_advance(self, manual_advance: bool) -> TimerConfiguration:
        return replace(self, manual_advance=manual_advance)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass
class TimerState:
    """Current state of the timer. Only the engine mutates it."""
    configuration: TimerConfiguration = field(default_factory=TimerConfiguration)
    current_phase: Phase = Phase.WORK
    cycle_index: int = 1
    remaining_seconds: int = 25 * 60
    run_state: RunState = RunState.IDLE
    phase_started_at: datetime | None = None
    preset_id: str | None = None
    pomodoros_completed: int = 0

    @property
    def planned_seconds(self) -> int:
        return self.configuration.duration_for(self.current_phase)

    @property
    def elapsed_seconds(self) -> int:
        return self.planned_seconds - self.remaining_seconds

    @property
    def time_remaining_display(self) -> str:
        """Format time remaining as MM:SS."""
        minutes, seconds = divmod(self.remaining_seconds, 60)
        return f"{minutes:02d}:{seconds:02d}"

    @property
    def progress_fraction(self) -> float:
        """Progress through current phase (0-1)."""
        planned = self.planned_seconds
        return min(1.0, max(0.0, self.elapsed_seconds / planned))


@dataclass(frozen=True)
class SessionRecord:
    """A finished or stopped phase, ready to be logged."""
    idempotency_key: str
    phase: Phase
    planned_duration_seconds: int
    actual_duration_seconds: int
    started_at: datetime
    ended_at: datetime
    completed_normally: bool
    preset_id: str | None = None
    cycle_index: int = 1

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-compatible dictionary."""
        return {
            "idempotency_key": self.idempotency_key,
            "phase": self.phase.value,
            "planned_duration_seconds": self.planned_duration_seconds,
            "actual_duration_seconds": self.actual_duration_seconds,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat(),
            "completed_normally": self.completed_normally,
            "preset_id": self.preset_id,
            "cycle_index": self.cycle_index,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionRecord:
        return cls(
            idempotency_key=data["idempotency_key"],
            phase=Phase(data["phase"]),
            planned_duration_seconds=int(data["planned_duration_seconds"]),
            actual_duration_seconds=int(data["actual_duration_seconds"]),
            started_at=datetime.fromisoformat(data["started_at"]),
            ended_at=datetime.fromisoformat(data["ended_at"]),
            completed_normally=bool(data["completed_normally"]),
            preset_id=data.get("preset_id"),
            cycle_index=int(data.get("cycle_index", 1)),
        )


@dataclass(frozen=True)
class Preset:
    """Named duration bundle stored by the backend."""
    id: str
    name: str
    work_duration_seconds: int
    short_break_duration_seconds: int
    long_break_duration_seconds: int
    cycles_before_long_break: int

    def to_configuration(self, manual_advance: bool = False) -> TimerConfiguration:
        return TimerConfiguration(
            work_duration_seconds=self.work_duration_seconds,
            short_break_duration_seconds=self.short_break_duration_seconds,
            long_break_duration_seconds=self.long_break_duration_seconds,
            cycles_before_long_break=self.cycles_before_long_break,
            manual_advance=manual_advance,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "work_duration_seconds": self.work_duration_seconds,
            "short_break_duration_seconds": self.short_break_duration_seconds,
            "long_break_duration_seconds": self.long_break_duration_seconds,
            "cycles_before_long_break": self.cycles_before_long_break,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Preset:
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            work_duration_seconds=int(data["work_duration_seconds"]),
            short_break_duration_seconds=int(data["short_break_duration_seconds"]),
            long_break_duration_seconds=int(data["long_break_duration_seconds"]),
            cycles_before_long_break=int(data["cycles_before_long_break"]),
        )


DEFAULT_PRESET = Preset(
    id="default",
    name="Classic Pomodoro",
    work_duration_seconds=25 * 60,
    short_break_duration_seconds=5 * 60,
    long_break_duration_seconds=15 * 60,
    cycles_before_long_break=4,
)
