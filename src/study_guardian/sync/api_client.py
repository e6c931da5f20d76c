"""Async client for the Study Guardian REST API."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp
from pydantic import ValidationError

from study_guardian.focus.errors import ApiError, ConfigurationInvalid, SubmissionFailure
from study_guardian.focus.models import Preset, SessionRecord
from study_guardian.focus.suggestions import BreakSuggestion
from study_guardian.sync.schemas import (
    PresetPayload,
    SessionReceipt,
    SessionSubmission,
    SuggestionPayload,
    unwrap_envelope,
)

logger = logging.getLogger(__name__)


class StudyApiClient:
    """Talks to the presets and sessions endpoints of the backend."""

    def __init__(
        self,
        api_url: str,
        token: str | None = None,
        timeout: float = 10.0,
    ):
        self.api_url = api_url.rstrip("/")
        self._token = token
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def fetch_presets(self) -> list[Preset]:
        """Fetch the user's timer presets."""
        body = await self._get_json("/presets")
        items = unwrap_envelope(body)
        if not isinstance(items, list):
            raise ApiError("Unexpected presets response")

        presets: list[Preset] = []
        for item in items:
            try:
                preset = PresetPayload.model_validate(item).to_preset()
                preset.to_configuration()
            except (ValidationError, ConfigurationInvalid) as e:
                logger.warning(f"Ignoring malformed preset from API: {e}")
                continue
            presets.append(preset)
        return presets

    async def fetch_suggestion(self, limit: int = 5) -> BreakSuggestion:
        """Fetch the server-side break suggestion."""
        body = await self._get_json("/sessions/suggestion", params={"limit": str(limit)})
        try:
            return SuggestionPayload.model_validate(unwrap_envelope(body)).to_suggestion()
        except ValidationError as e:
            raise ApiError(f"Unexpected suggestion response: {e}") from e

    async def submit_session(self, record: SessionRecord) -> SessionReceipt:
        """Submit a finished session.

        The idempotency key travels in the body and the ``Idempotency-Key``
        header; a 409 answer means the server already has this record.
        """
        payload = SessionSubmission.from_record(record).to_json()
        headers = self._headers()
        headers["Idempotency-Key"] = record.idempotency_key

        try:
            async with aiohttp.ClientSession(timeout=self._timeout) as session:
                async with session.post(
                    f"{self.api_url}/sessions/complete",
                    json=payload,
                    headers=headers,
                ) as resp:
                    if resp.status == 409:
                        logger.info(f"Session {record.idempotency_key} already recorded by server")
                        return SessionReceipt(idempotency_key=record.idempotency_key, duplicate=True)
                    if resp.status >= 400:
                        text = await resp.text()
                        raise SubmissionFailure(
                            f"Session submission failed: {resp.status} {text[:200]}",
                            status=resp.status,
                        )
                    body = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise SubmissionFailure(f"Network error submitting session: {e}") from e

        if isinstance(body, dict) and body.get("success") is False:
            raise SubmissionFailure(f"Server rejected session: {body.get('error', 'unknown error')}")
        return _receipt_from_body(record.idempotency_key, body)

    async def _get_json(self, path: str, params: dict[str, str] | None = None) -> Any:
        try:
            async with aiohttp.ClientSession(timeout=self._timeout) as session:
                async with session.get(
                    f"{self.api_url}{path}",
                    params=params,
                    headers=self._headers(),
                ) as resp:
                    if resp.status >= 400:
                        raise ApiError(f"GET {path} failed: {resp.status}", status=resp.status)
                    return await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise ApiError(f"Network error on GET {path}: {e}") from e


def _receipt_from_body(idempotency_key: str, body: Any) -> SessionReceipt:
    data = unwrap_envelope(body)
    server_id = None
    if isinstance(data, dict):
        raw_id = data.get("_id") or data.get("id")
        server_id = str(raw_id) if raw_id is not None else None
    today_count = body.get("todayCount") if isinstance(body, dict) else None
    return SessionReceipt(
        idempotency_key=idempotency_key,
        server_id=server_id,
        today_count=today_count,
    )
