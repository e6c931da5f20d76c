"""Phase sequencing rules for the Pomodoro cycle."""

from __future__ import annotations

from typing import NamedTuple, Protocol

from study_guardian.focus.models import Phase


class CycleConfiguration(Protocol):
    """The configuration fields the policy reads."""

    work_duration_seconds: int
    short_break_duration_seconds: int
    long_break_duration_seconds: int
    cycles_before_long_break: int


class PhaseTransition(NamedTuple):
    phase: Phase
    duration_seconds: int
    next_cycle_index: int


def phase_duration(phase: Phase, configuration: CycleConfiguration) -> int:
    """Get duration in seconds for a phase."""
    if phase == Phase.WORK:
        return configuration.work_duration_seconds
    elif phase == Phase.SHORT_BREAK:
        return configuration.short_break_duration_seconds
    else:
        return configuration.long_break_duration_seconds


def next_phase(
    current_phase: Phase,
    cycle_index: int,
    configuration: CycleConfiguration,
) -> PhaseTransition:
    """Work out which phase follows the one that just ended.

    Leaving work keeps the cycle index; the long break comes when the index
    is a multiple of ``cycles_before_long_break``. Leaving a short break
    advances the index, leaving a long break resets it to 1.
    """
    if current_phase == Phase.WORK:
        interval = configuration.cycles_before_long_break
        # An interval of 1 (or less) means every work phase earns a long break
        if interval <= 1 or cycle_index % interval == 0:
            following = Phase.LONG_BREAK
        else:
            following = Phase.SHORT_BREAK
        return PhaseTransition(following, phase_duration(following, configuration), cycle_index)

    next_cycle = 1 if current_phase == Phase.LONG_BREAK else cycle_index + 1
    return PhaseTransition(Phase.WORK, phase_duration(Phase.WORK, configuration), next_cycle)
