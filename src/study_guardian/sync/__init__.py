"""REST API client, preset service and session logging."""

from study_guardian.sync.api_client import StudyApiClient
from study_guardian.sync.presets import PresetService
from study_guardian.sync.session_logger import Ack, FlushResult, QueueFallback, SessionLogger

__all__ = [
    "StudyApiClient",
    "PresetService",
    "SessionLogger",
    "Ack",
    "QueueFallback",
    "FlushResult",
]
