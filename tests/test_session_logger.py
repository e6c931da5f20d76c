from __future__ import annotations

import asyncio
import sqlite3
from pathlib import Path

from study_guardian.core.clock import ManualClock
from study_guardian.focus.errors import SubmissionFailure
from study_guardian.focus.events import PhaseAborted, PhaseReady
from study_guardian.focus.models import Phase, TimerConfiguration
from study_guardian.focus.timer import TimerEngine
from study_guardian.storage.database import init_database
from study_guardian.storage.session_store import SessionStore
from study_guardian.sync.schemas import SessionReceipt
from study_guardian.sync.session_logger import Ack, QueueFallback, SessionLogger


class FakeApi:
    """Records submissions; fails while ``online`` is False."""

    def __init__(self, online: bool = True, delay: float = 0.0) -> None:
        self.online = online
        self.delay = delay
        self.calls: list[str] = []
        self.accepted: list[str] = []

    async def submit_session(self, record):
        self.calls.append(record.idempotency_key)
        if self.delay:
            await asyncio.sleep(self.delay)
        if not self.online:
            raise SubmissionFailure("connection refused")
        self.accepted.append(record.idempotency_key)
        return SessionReceipt(idempotency_key=record.idempotency_key, server_id=f"srv-{len(self.accepted)}")


def _run(tmp_path: Path, body):
    async def run():
        db = await init_database(tmp_path / "logger.db")
        try:
            return await body(SessionStore(db))
        finally:
            await db.close()

    return asyncio.run(run())


def test_record_acknowledged(tmp_path: Path, make_record) -> None:
    api = FakeApi()
    record = make_record(key="ok")

    async def body(store):
        session_logger = SessionLogger(api, store)
        result = await session_logger.record(record)
        return result, await store.pending_count(), await store.recent_history()

    result, pending, history = _run(tmp_path, body)

    assert result == Ack(idempotency_key="ok", server_id="srv-1")
    assert pending == 0
    assert history == [record]


def test_same_record_is_submitted_once(tmp_path: Path, make_record) -> None:
    api = FakeApi()
    record = make_record(key="once")

    async def body(store):
        session_logger = SessionLogger(api, store)
        first = await session_logger.record(record)
        second = await session_logger.record(record)
        return first, second

    first, second = _run(tmp_path, body)

    assert api.calls == ["once"]
    assert first.duplicate is False
    assert second == Ack(idempotency_key="once", duplicate=True)


def test_concurrent_submissions_of_same_record(tmp_path: Path, make_record) -> None:
    api = FakeApi(delay=0.01)
    record = make_record(key="race")

    async def body(store):
        session_logger = SessionLogger(api, store)
        return await asyncio.gather(session_logger.record(record), session_logger.record(record))

    results = _run(tmp_path, body)

    assert api.accepted == ["race"]
    assert sorted(r.duplicate for r in results) == [False, True]


def test_offline_record_falls_back_to_queue(tmp_path: Path, make_record) -> None:
    api = FakeApi(online=False)
    record = make_record(key="later")

    async def body(store):
        session_logger = SessionLogger(api, store)
        result = await session_logger.record(record)
        return result, await store.drain(), await store.recent_history()

    result, queued, history = _run(tmp_path, body)

    assert isinstance(result, QueueFallback)
    assert result.idempotency_key == "later"
    assert "connection refused" in result.error
    assert [q.record for q in queued] == [record]
    assert history == [record]


def test_flush_delivers_in_fifo_order(tmp_path: Path, make_record) -> None:
    api = FakeApi(online=False)
    records = [make_record(key=f"q{i}") for i in range(3)]

    async def body(store):
        session_logger = SessionLogger(api, store)
        for record in records:
            await session_logger.record(record)
        api.online = True
        api.calls.clear()
        return await session_logger.flush()

    result = _run(tmp_path, body)

    assert api.accepted == ["q0", "q1", "q2"]
    assert result.delivered == 3
    assert result.remaining == 0
    assert result.dropped == []


def test_flush_stops_at_first_failure(tmp_path: Path, make_record) -> None:
    api = FakeApi(online=False)

    async def body(store):
        session_logger = SessionLogger(api, store)
        for i in range(3):
            await store.enqueue(make_record(key=f"q{i}"))
        result = await session_logger.flush()
        return result, await store.drain()

    result, queued = _run(tmp_path, body)

    assert api.calls == ["q0"]
    assert result.failed == 1
    assert result.remaining == 3
    assert [q.retry_count for q in queued] == [1, 0, 0]


def test_retry_budget_drops_and_reports(tmp_path: Path, make_record) -> None:
    api = FakeApi(online=False)
    given_up: list = []
    record = make_record(key="doomed")

    async def body(store):
        session_logger = SessionLogger(api, store, max_retries=3, on_give_up=given_up.extend)
        await store.enqueue(record)
        results = [await session_logger.flush() for _ in range(3)]
        return results, await store.pending_count()

    results, pending = _run(tmp_path, body)

    assert [len(r.dropped) for r in results] == [0, 0, 1]
    assert results[-1].dropped == [record]
    assert given_up == [record]
    assert pending == 0


def test_give_up_callback_errors_are_contained(tmp_path: Path, make_record) -> None:
    api = FakeApi(online=False)

    def broken(records) -> None:
        raise RuntimeError("ui gone")

    async def body(store):
        session_logger = SessionLogger(api, store, max_retries=1, on_give_up=broken)
        await store.enqueue(make_record())
        return await session_logger.flush()

    result = _run(tmp_path, body)

    assert len(result.dropped) == 1


def test_concurrent_flush_is_skipped(tmp_path: Path, make_record) -> None:
    api = FakeApi(delay=0.02)

    async def body(store):
        session_logger = SessionLogger(api, store)
        await store.enqueue(make_record(key="slow"))
        return await asyncio.gather(session_logger.flush(), session_logger.flush())

    first, second = _run(tmp_path, body)

    assert first.delivered == 1
    assert second.skipped is True
    assert api.calls == ["slow"]


def test_engine_events_are_logged_in_background(tmp_path: Path) -> None:
    api = FakeApi()
    engine = TimerEngine(TimerConfiguration(work_duration_seconds=2), clock=ManualClock())

    async def body(store):
        session_logger = SessionLogger(api, store)
        engine.subscribe(session_logger.handle_event)
        engine.start()
        engine.tick()
        engine.tick()
        engine.tick()
        engine.stop()
        await session_logger.wait_idle()
        return await store.recent_history()

    history = _run(tmp_path, body)

    assert len(api.accepted) == 2
    assert {r.phase for r in history} == {Phase.WORK, Phase.SHORT_BREAK}


def test_events_without_loop_wait_for_flush(tmp_path: Path, make_record) -> None:
    api = FakeApi()
    record = make_record(key="no-loop")

    async def body(store):
        session_logger = SessionLogger(api, store)
        return session_logger

    session_logger = _run(tmp_path, body)
    session_logger.handle_event(PhaseAborted(record))
    session_logger.handle_event(PhaseReady(Phase.WORK, 1, 1500))

    assert session_logger.pending_records == [record]

    async def flush(store):
        session_logger.store = store
        return await session_logger.flush()

    result = _run(tmp_path, flush)

    assert result.delivered == 1
    assert api.accepted == ["no-loop"]
    assert session_logger.pending_records == []


def test_empty_aborted_phase_is_not_logged(tmp_path: Path, make_record) -> None:
    api = FakeApi()
    session_logger = SessionLogger(api, store=None)

    session_logger.handle_event(PhaseAborted(make_record(actual=0, completed=False)))

    assert session_logger.pending_records == []


def test_start_flushes_leftovers_and_stop_flushes_again(tmp_path: Path, make_record) -> None:
    api = FakeApi()

    async def body(store):
        await store.enqueue(make_record(key="leftover"))
        session_logger = SessionLogger(api, store, flush_interval=3600)
        await session_logger.start()
        delivered_on_start = list(api.accepted)
        await store.enqueue(make_record(key="late"))
        await session_logger.stop()
        return delivered_on_start, await store.pending_count()

    on_start, pending = _run(tmp_path, body)

    assert on_start == ["leftover"]
    assert api.accepted == ["leftover", "late"]
    assert pending == 0


class ReadOnlyStore(SessionStore):
    """A store whose queue cannot be written, as on a full disk."""

    async def enqueue(self, record):
        raise sqlite3.OperationalError("database or disk is full")


def test_flush_returns_when_queue_cannot_be_written(tmp_path: Path, make_record) -> None:
    api = FakeApi(online=False)
    records = [make_record(key="a"), make_record(key="b")]

    async def run():
        db = await init_database(tmp_path / "logger.db")
        try:
            session_logger = SessionLogger(api, ReadOnlyStore(db))
            session_logger.pending_records.extend(records)
            first = await asyncio.wait_for(session_logger.flush(), timeout=2)
            second = await asyncio.wait_for(session_logger.flush(), timeout=2)
            return session_logger, first, second
        finally:
            await db.close()

    session_logger, first, second = asyncio.run(run())

    assert first.skipped is False
    assert first.remaining == 2
    assert second.skipped is False
    assert session_logger.pending_records == records


def test_offline_record_kept_in_memory_when_queue_fails(tmp_path: Path, make_record) -> None:
    api = FakeApi(online=False)
    record = make_record(key="kept")

    async def run():
        db = await init_database(tmp_path / "logger.db")
        try:
            session_logger = SessionLogger(api, ReadOnlyStore(db))
            result = await session_logger.record(record)
            return session_logger, result
        finally:
            await db.close()

    session_logger, result = asyncio.run(run())

    assert isinstance(result, QueueFallback)
    assert session_logger.pending_records == [record]
