"""Focus timer: phase policy, engine, events and tick driver."""

from study_guardian.focus.driver import TimerDriver
from study_guardian.focus.errors import (
    ApiError,
    ConfigurationInvalid,
    InvalidTransition,
    NotificationFailure,
    StudyGuardianError,
    SubmissionFailure,
)
from study_guardian.focus.events import PhaseAborted, PhaseCompleted, PhaseReady, TimerEvent
from study_guardian.focus.models import (
    DEFAULT_PRESET,
    Phase,
    Preset,
    RunState,
    SessionRecord,
    TimerConfiguration,
    TimerState,
)
from study_guardian.focus.phase_policy import PhaseTransition, next_phase, phase_duration
from study_guardian.focus.suggestions import BreakSuggestion, suggest_break
from study_guardian.focus.timer import TimerEngine

__all__ = [
    "TimerEngine",
    "TimerDriver",
    "TimerConfiguration",
    "TimerState",
    "Phase",
    "RunState",
    "SessionRecord",
    "Preset",
    "DEFAULT_PRESET",
    "PhaseTransition",
    "next_phase",
    "phase_duration",
    "PhaseCompleted",
    "PhaseAborted",
    "PhaseReady",
    "TimerEvent",
    "BreakSuggestion",
    "suggest_break",
    "StudyGuardianError",
    "ApiError",
    "InvalidTransition",
    "ConfigurationInvalid",
    "SubmissionFailure",
    "NotificationFailure",
]
