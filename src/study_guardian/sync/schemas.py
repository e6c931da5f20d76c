"""Pydantic schemas for the Study Guardian REST API."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from study_guardian.focus.models import Preset, SessionRecord
from study_guardian.focus.suggestions import BreakSuggestion


class PresetPayload(BaseModel):
    """A timer preset as returned by ``GET /presets``.

    Accepts both the ``*Seconds`` field names and the older backend names
    (``workDuration``, ``breakDuration``, ``_id``). Durations are seconds.
    """

    model_config = ConfigDict(extra="ignore")

    id: str = Field(validation_alias=AliasChoices("id", "_id"))
    name: str = Field(default="Untitled preset")
    work_duration_seconds: int = Field(
        validation_alias=AliasChoices("workDurationSeconds", "workDuration", "work_duration_seconds")
    )
    short_break_duration_seconds: int = Field(
        validation_alias=AliasChoices(
            "shortBreakDurationSeconds", "breakDuration", "short_break_duration_seconds"
        )
    )
    long_break_duration_seconds: int = Field(
        validation_alias=AliasChoices(
            "longBreakDurationSeconds", "longBreakDuration", "long_break_duration_seconds"
        )
    )
    cycles_before_long_break: int = Field(
        validation_alias=AliasChoices("cyclesBeforeLongBreak", "cycles_before_long_break")
    )

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> str:
        return str(value)

    def to_preset(self) -> Preset:
        return Preset(
            id=self.id,
            name=self.name,
            work_duration_seconds=self.work_duration_seconds,
            short_break_duration_seconds=self.short_break_duration_seconds,
            long_break_duration_seconds=self.long_break_duration_seconds,
            cycles_before_long_break=self.cycles_before_long_break,
        )


class SessionSubmission(BaseModel):
    """Body of ``POST /sessions/complete``."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    idempotency_key: str
    phase: str
    preset_id: str | None = None
    duration_seconds: int
    planned_duration_seconds: int
    started_at: datetime
    ended_at: datetime
    completed_successfully: bool
    cycle_index: int

    @classmethod
    def from_record(cls, record: SessionRecord) -> SessionSubmission:
        return cls(
            idempotency_key=record.idempotency_key,
            phase=record.phase.value,
            preset_id=record.preset_id,
            duration_seconds=record.actual_duration_seconds,
            planned_duration_seconds=record.planned_duration_seconds,
            started_at=record.started_at,
            ended_at=record.ended_at,
            completed_successfully=record.completed_normally,
            cycle_index=record.cycle_index,
        )

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class SessionReceipt(BaseModel):
    """What the API tells us about an accepted session."""

    idempotency_key: str
    server_id: str | None = None
    duplicate: bool = False
    today_count: int | None = None


class SuggestionPayload(BaseModel):
    """Response of ``GET /sessions/suggestion``."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    suggested_break_minutes: int
    confidence: str = "low"
    reason: str = ""
    streak: int = 0
    samples_used: int = 0

    def to_suggestion(self) -> BreakSuggestion:
        return BreakSuggestion(
            suggested_break_minutes=self.suggested_break_minutes,
            confidence=self.confidence,
            reason=self.reason,
            streak=self.streak,
            samples_used=self.samples_used,
        )


def unwrap_envelope(body: Any) -> Any:
    """Strip the ``{"success": ..., "data": ...}`` wrapper if present."""
    if isinstance(body, dict) and "data" in body:
        return body["data"]
    return body
