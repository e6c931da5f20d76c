"""Storage layer for the local database."""

from study_guardian.storage.database import Database, init_database
from study_guardian.storage.session_store import QueuedRecord, SessionStore

__all__ = ["Database", "init_database", "QueuedRecord", "SessionStore"]
