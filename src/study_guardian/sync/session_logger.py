"""Delivers finished sessions to the API with a durable local fallback."""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Callable, Protocol

from study_guardian.focus.errors import SubmissionFailure
from study_guardian.focus.events import PhaseAborted, PhaseCompleted, TimerEvent
from study_guardian.focus.models import SessionRecord
from study_guardian.storage.session_store import SessionStore
from study_guardian.sync.schemas import SessionReceipt

logger = logging.getLogger(__name__)


class SessionSubmitter(Protocol):
    async def submit_session(self, record: SessionRecord) -> SessionReceipt:
        ...


@dataclass(frozen=True)
class Ack:
    """The API accepted the record (or already had it)."""
    idempotency_key: str
    duplicate: bool = False
    server_id: str | None = None


@dataclass(frozen=True)
class QueueFallback:
    """The API was unreachable; the record waits in the local queue."""
    idempotency_key: str
    error: str


@dataclass
class FlushResult:
    delivered: int = 0
    failed: int = 0
    remaining: int = 0
    dropped: list[SessionRecord] = field(default_factory=list)
    skipped: bool = False


GiveUpCallback = Callable[[list[SessionRecord]], None]


class SessionLogger:
    """Turns engine events into API submissions.

    Records that cannot be delivered go to the durable queue and are retried
    in FIFO order by ``flush()``. After ``max_retries`` failed redeliveries a
    record is dropped and reported through ``on_give_up``.

    Usage:
        session_logger = SessionLogger(api, store)
        engine.subscribe(session_logger.handle_event)
        await session_logger.start()   # flushes leftovers, then periodically
        ...
        await session_logger.stop()
    """

    def __init__(
        self,
        api: SessionSubmitter,
        store: SessionStore,
        max_retries: int = 5,
        flush_interval: float = 60.0,
        on_give_up: GiveUpCallback | None = None,
    ):
        self.api = api
        self.store = store
        self.max_retries = max_retries
        self.on_give_up = on_give_up
        self._flush_interval = flush_interval

        # Records seen while no event loop was running
        self.pending_records: list[SessionRecord] = []

        self._acked: set[str] = set()
        self._submit_lock = asyncio.Lock()
        self._flush_lock = asyncio.Lock()
        self._tasks: set[asyncio.Task] = set()
        self._flush_task: asyncio.Task | None = None
        self._running = False

    def handle_event(self, event: TimerEvent) -> None:
        """Engine listener. Schedules submission and returns immediately."""
        if not isinstance(event, (PhaseCompleted, PhaseAborted)):
            return

        record = event.record
        if record.actual_duration_seconds <= 0:
            logger.debug(f"Not logging empty {record.phase.value} session")
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.pending_records.append(record)
            return

        task = loop.create_task(self._record_in_background(record))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def record(self, record: SessionRecord) -> Ack | QueueFallback:
        """Submit a record, queueing it locally if the API is unavailable."""
        key = record.idempotency_key
        async with self._submit_lock:
            if key in self._acked:
                return Ack(idempotency_key=key, duplicate=True)
            try:
                receipt = await self.api.submit_session(record)
            except SubmissionFailure as e:
                logger.warning(f"Session {key} not delivered, queued for retry: {e}")
                if not await self._queue(record):
                    self.pending_records.append(record)
                return QueueFallback(idempotency_key=key, error=str(e))
            self._acked.add(key)

        await self.store.remove(key)
        await self._remember(record, synced=True)
        logger.info(f"Logged {record.phase.value} session ({record.actual_duration_seconds}s)")
        return Ack(idempotency_key=key, duplicate=receipt.duplicate, server_id=receipt.server_id)

    async def flush(self) -> FlushResult:
        """Redeliver queued records, oldest first.

        Only one flush runs at a time; a concurrent call returns a result
        with ``skipped=True``. Delivery stops at the first failure so the
        queue order is preserved.
        """
        if self._flush_lock.locked():
            return FlushResult(skipped=True)

        async with self._flush_lock:
            result = FlushResult()

            pending, self.pending_records = self.pending_records, []
            for i, record in enumerate(pending):
                if not await self._queue(record):
                    # Storage is unavailable; keep the rest in memory for next time
                    self.pending_records = pending[i:] + self.pending_records
                    result.remaining = len(self.pending_records)
                    return result

            for queued in await self.store.drain():
                key = queued.idempotency_key
                async with self._submit_lock:
                    if key in self._acked:
                        await self.store.remove(key)
                        continue
                    try:
                        await self.api.submit_session(queued.record)
                    except SubmissionFailure as e:
                        result.failed += 1
                        retries = await self.store.mark_attempt(key, str(e))
                        if retries >= self.max_retries:
                            await self.store.remove(key)
                            result.dropped.append(queued.record)
                            logger.warning(
                                f"Giving up on session {key} after {retries} attempts: {e}"
                            )
                        else:
                            logger.info(f"Redelivery of {key} failed ({retries}/{self.max_retries})")
                        break
                    self._acked.add(key)

                await self.store.remove(key)
                await self.store.mark_synced(key)
                result.delivered += 1

            result.remaining = await self.store.pending_count()

        if result.delivered:
            logger.info(f"Flushed {result.delivered} queued session(s)")
        if result.dropped:
            self._report_give_up(result.dropped)
        return result

    async def wait_idle(self) -> None:
        """Wait for background submissions started by ``handle_event``."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def start(self) -> None:
        """Flush leftovers from earlier runs and start periodic redelivery."""
        if self._running:
            return

        self._running = True
        await self.flush()
        self._flush_task = asyncio.create_task(self._periodic_flush())
        logger.info(f"Session logger started (flush every {self._flush_interval}s)")

    async def stop(self) -> None:
        """Stop periodic redelivery after a final flush."""
        if not self._running:
            return

        self._running = False
        if self._flush_task:
            self._flush_task.cancel()
            try:
                await self._flush_task
            except asyncio.CancelledError:
                pass
            self._flush_task = None

        await self.wait_idle()
        await self.flush()
        logger.info("Session logger stopped")

    async def _periodic_flush(self) -> None:
        """Periodically retry the queue."""
        while self._running:
            try:
                await asyncio.sleep(self._flush_interval)
                if self._running:
                    await self.flush()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in periodic flush: {e}")

    async def _record_in_background(self, record: SessionRecord) -> None:
        try:
            await self.record(record)
        except Exception as e:
            logger.error(f"Failed to log session {record.idempotency_key}: {e}")
            self.pending_records.append(record)

    async def _queue(self, record: SessionRecord) -> bool:
        try:
            await self.store.enqueue(record)
        except sqlite3.Error as e:
            logger.error(f"Could not queue session {record.idempotency_key} locally: {e}")
            return False
        await self._remember(record, synced=False)
        return True

    async def _remember(self, record: SessionRecord, synced: bool) -> None:
        try:
            await self.store.append_history(record, synced=synced)
        except sqlite3.Error as e:
            logger.warning(f"Could not update local session history: {e}")

    def _report_give_up(self, records: list[SessionRecord]) -> None:
        logger.warning(
            f"{len(records)} session(s) could not be recorded and were discarded"
        )
        if self.on_give_up:
            try:
                self.on_give_up(records)
            except Exception as e:
                logger.error(f"Error in on_give_up callback: {e}")
