"""Preset retrieval with an offline cache."""

from __future__ import annotations

import logging

from study_guardian.focus.errors import ApiError, ConfigurationInvalid
from study_guardian.focus.models import DEFAULT_PRESET, Preset
from study_guardian.storage.session_store import SessionStore
from study_guardian.sync.api_client import StudyApiClient

logger = logging.getLogger(__name__)


class PresetService:
    """Fetches presets from the API, falling back to the last cached list."""

    def __init__(self, api: StudyApiClient | None, store: SessionStore | None = None):
        self.api = api
        self.store = store
        self.last_source = "default"

    async def list_presets(self) -> list[Preset]:
        """Return presets from the API, the cache, or the built-in default."""
        if self.api is not None:
            try:
                presets = _valid(await self.api.fetch_presets())
            except ApiError as e:
                logger.warning(f"Could not fetch presets, using cache: {e}")
            else:
                if self.store is not None:
                    await self.store.save_presets(presets)
                self.last_source = "api"
                return presets or [DEFAULT_PRESET]

        if self.store is not None:
            cached = _valid(await self.store.cached_presets())
            if cached:
                self.last_source = "cache"
                return cached

        self.last_source = "default"
        return [DEFAULT_PRESET]

    async def find(self, preset_id_or_name: str) -> Preset | None:
        """Look a preset up by id, or by case-insensitive name."""
        presets = await self.list_presets()
        for preset in presets:
            if preset.id == preset_id_or_name:
                return preset
        wanted = preset_id_or_name.lower()
        for preset in presets:
            if preset.name.lower() == wanted:
                return preset
        return None


def _valid(presets: list[Preset]) -> list[Preset]:
    """Drop presets whose durations cannot drive the timer."""
    valid = []
    for preset in presets:
        try:
            preset.to_configuration()
        except ConfigurationInvalid as e:
            logger.warning(f"Ignoring invalid preset {preset.id!r}: {e}")
            continue
        valid.append(preset)
    return valid
