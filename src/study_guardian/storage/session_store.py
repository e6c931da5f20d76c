"""Durable session queue, local history and preset cache on SQLite."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass

from study_guardian.focus.models import Preset, SessionRecord
from study_guardian.storage.database import Database

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 100


@dataclass(frozen=True)
class QueuedRecord:
    """A session record waiting for redelivery."""
    record: SessionRecord
    retry_count: int
    error_message: str | None = None

    @property
    def idempotency_key(self) -> str:
        return self.record.idempotency_key


class SessionStore:
    """SQLite-backed queue and history for session records.

    ``drain()`` is non-destructive: entries leave the queue only through
    ``remove()``, once delivered or given up on.
    """

    def __init__(self, db: Database, history_limit: int = DEFAULT_HISTORY_LIMIT):
        self.db = db
        self.history_limit = history_limit

    # Queue

    async def enqueue(self, record: SessionRecord) -> bool:
        """Queue a record for redelivery. Returns False if it was already queued."""
        added = await self.db.execute(
            "INSERT OR IGNORE INTO session_queue (idempotency_key, payload) VALUES (?, ?)",
            (record.idempotency_key, json.dumps(record.to_dict())),
        )
        if added:
            logger.debug(f"Queued session {record.idempotency_key}")
        return bool(added)

    async def drain(self) -> list[QueuedRecord]:
        """Return queued records in FIFO order without removing them."""
        rows = await self.db.fetch_all(
            "SELECT payload, retry_count, error_message FROM session_queue ORDER BY id ASC"
        )
        queued: list[QueuedRecord] = []
        for row in rows:
            try:
                record = SessionRecord.from_dict(json.loads(row["payload"]))
            except (ValueError, KeyError) as e:
                logger.error(f"Skipping unreadable queued session: {e}")
                continue
            queued.append(
                QueuedRecord(
                    record=record,
                    retry_count=row["retry_count"] or 0,
                    error_message=row["error_message"],
                )
            )
        return queued

    async def remove(self, idempotency_key: str) -> None:
        await self.db.execute(
            "DELETE FROM session_queue WHERE idempotency_key = ?", (idempotency_key,)
        )

    async def mark_attempt(self, idempotency_key: str, error: str) -> int:
        """Record a failed delivery attempt and return the new retry count."""
        await self.db.execute(
            """UPDATE session_queue
               SET retry_count = retry_count + 1, error_message = ?, last_attempt_at = CURRENT_TIMESTAMP
               WHERE idempotency_key = ?""",
            (error, idempotency_key),
        )
        row = await self.db.fetch_one(
            "SELECT retry_count FROM session_queue WHERE idempotency_key = ?",
            (idempotency_key,),
        )
        return row["retry_count"] if row else 0

    async def pending_count(self) -> int:
        row = await self.db.fetch_one("SELECT COUNT(*) AS c FROM session_queue")
        return int(row["c"] if row else 0)

    # History

    async def append_history(self, record: SessionRecord, synced: bool) -> None:
        """Remember a session locally, keeping only the newest entries."""
        async with self.db.transaction() as conn:
            await conn.execute(
                """INSERT INTO session_history (idempotency_key, phase, ended_at, payload, synced)
                   VALUES (?, ?, ?, ?, ?)
                   ON CONFLICT(idempotency_key) DO UPDATE SET synced = excluded.synced""",
                (
                    record.idempotency_key,
                    record.phase.value,
                    record.ended_at.isoformat(),
                    json.dumps(record.to_dict()),
                    synced,
                ),
            )
            await conn.execute(
                """DELETE FROM session_history WHERE id NOT IN (
                       SELECT id FROM session_history ORDER BY ended_at DESC, id DESC LIMIT ?
                   )""",
                (self.history_limit,),
            )

    async def mark_synced(self, idempotency_key: str) -> None:
        await self.db.execute(
            "UPDATE session_history SET synced = TRUE WHERE idempotency_key = ?",
            (idempotency_key,),
        )

    async def recent_history(self, limit: int = 20) -> list[SessionRecord]:
        """Most recent sessions first."""
        rows = await self.db.fetch_all(
            "SELECT payload FROM session_history ORDER BY ended_at DESC, id DESC LIMIT ?",
            (limit,),
        )
        return [SessionRecord.from_dict(json.loads(row["payload"])) for row in rows]

    # Presets

    async def save_presets(self, presets: list[Preset]) -> None:
        """Replace the cached preset list."""
        async with self.db.transaction() as conn:
            await conn.execute("DELETE FROM preset_cache")
            for position, preset in enumerate(presets):
                await conn.execute(
                    "INSERT OR REPLACE INTO preset_cache (id, position, payload) VALUES (?, ?, ?)",
                    (preset.id, position, json.dumps(preset.to_dict())),
                )

    async def cached_presets(self) -> list[Preset]:
        rows = await self.db.fetch_all("SELECT payload FROM preset_cache ORDER BY position ASC")
        return [Preset.from_dict(json.loads(row["payload"])) for row in rows]
