"""Break length suggestions from recent focus history."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable

from study_guardian.focus.models import Phase, SessionRecord

DEFAULT_BREAK_MINUTES = 5
MIN_BREAK_MINUTES = 5
MAX_BREAK_MINUTES = 20
# One break minute per this many minutes of focus
WORK_TO_BREAK_RATIO = 6


@dataclass(frozen=True)
class BreakSuggestion:
    suggested_break_minutes: int
    confidence: str
    reason: str
    streak: int = 0
    samples_used: int = 0


def suggest_break(
    history: Iterable[SessionRecord],
    limit: int = 5,
    now: datetime | None = None,
) -> BreakSuggestion:
    """Suggest a break length from the most recent completed focus sessions.

    Durations are averaged with linear weights, the newest session counting
    most. The result is clamped to 5..20 minutes. The streak counts sessions
    that ended within the last 24 hours.
    """
    now = now or datetime.now(timezone.utc)
    recent = sorted(
        (r for r in history if r.completed_normally and r.phase == Phase.WORK),
        key=lambda r: r.ended_at,
        reverse=True,
    )[:limit]

    if not recent:
        return BreakSuggestion(
            suggested_break_minutes=DEFAULT_BREAK_MINUTES,
            confidence="low",
            reason=f"No session history available. Using default {DEFAULT_BREAK_MINUTES}-minute break.",
        )

    one_day_ago = now - timedelta(days=1)
    streak = sum(1 for r in recent if r.ended_at >= one_day_ago)

    durations = [r.actual_duration_seconds / 60 for r in recent]
    weights = [len(durations) - i for i in range(len(durations))]
    weighted_avg = sum(d * w for d, w in zip(durations, weights)) / sum(weights)

    raw_minutes = weighted_avg / WORK_TO_BREAK_RATIO
    suggested = max(MIN_BREAK_MINUTES, min(MAX_BREAK_MINUTES, round(raw_minutes)))

    if len(recent) >= 5:
        confidence = "high"
    elif len(recent) >= 3:
        confidence = "medium"
    else:
        confidence = "low"

    return BreakSuggestion(
        suggested_break_minutes=suggested,
        confidence=confidence,
        reason=(
            f"Based on your last {len(recent)} session(s), "
            f"averaging {round(weighted_avg)} minutes each."
        ),
        streak=streak,
        samples_used=len(recent),
    )
