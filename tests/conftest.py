from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from study_guardian.focus.models import Phase, SessionRecord

BASE_TIME = datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)


def build_record(
    phase: Phase = Phase.WORK,
    actual: int = 1500,
    planned: int = 1500,
    completed: bool = True,
    ended_at: datetime | None = None,
    key: str | None = None,
) -> SessionRecord:
    ended_at = ended_at or BASE_TIME
    return SessionRecord(
        idempotency_key=key or uuid.uuid4().hex,
        phase=phase,
        planned_duration_seconds=planned,
        actual_duration_seconds=actual,
        started_at=ended_at - timedelta(seconds=actual),
        ended_at=ended_at,
        completed_normally=completed,
    )


@pytest.fixture
def make_record():
    return build_record
