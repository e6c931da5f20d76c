"""Single-connection SQLite access for the session queue, history and preset cache."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator

import aiosqlite

logger = logging.getLogger(__name__)

# Bump when SCHEMA gains a table or column
SCHEMA_VERSION = 1

SCHEMA = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at DATETIME DEFAULT CURRENT_TIMESTAMP
);

-- Session records waiting for delivery to the API
CREATE TABLE IF NOT EXISTS session_queue (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    idempotency_key TEXT NOT NULL UNIQUE,
    payload JSON NOT NULL,
    retry_count INTEGER DEFAULT 0,
    error_message TEXT,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    last_attempt_at DATETIME
);

-- Recent sessions kept locally for offline suggestions
CREATE TABLE IF NOT EXISTS session_history (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    idempotency_key TEXT NOT NULL UNIQUE,
    phase TEXT NOT NULL,
    ended_at DATETIME NOT NULL,
    payload JSON NOT NULL,
    synced BOOLEAN DEFAULT FALSE,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_history_ended ON session_history(ended_at);

-- Last preset list fetched from the API
CREATE TABLE IF NOT EXISTS preset_cache (
    id TEXT PRIMARY KEY,
    position INTEGER NOT NULL,
    payload JSON NOT NULL,
    fetched_at DATETIME DEFAULT CURRENT_TIMESTAMP
);
"""

PRAGMAS = (
    "PRAGMA journal_mode=WAL",
    "PRAGMA synchronous=NORMAL",
    "PRAGMA busy_timeout=5000",
)

Params = tuple[Any, ...]


class Database:
    """One aiosqlite connection shared by the stores.

    Writes are serialized with a lock. Multi-statement writes go through
    ``transaction()``, which yields the raw connection while holding it.
    """

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._connection: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    @property
    def connection(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise RuntimeError(f"Database {self.db_path} is not open")
        return self._connection

    async def connect(self) -> None:
        if self._connection is not None:
            return

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        # Autocommit; explicit BEGIN/COMMIT in transaction()
        self._connection = await aiosqlite.connect(self.db_path, isolation_level=None)
        self._connection.row_factory = aiosqlite.Row
        for pragma in PRAGMAS:
            await self._connection.execute(pragma)

        await self._migrate()
        logger.info(f"Opened session database {self.db_path}")

    async def _migrate(self) -> None:
        conn = self.connection
        await conn.executescript(SCHEMA)

        async with conn.execute("SELECT COALESCE(MAX(version), 0) FROM schema_version") as cursor:
            (version,) = await cursor.fetchone()

        if version < SCHEMA_VERSION:
            await conn.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
            logger.info(f"Session database schema {version} -> {SCHEMA_VERSION}")

    async def close(self) -> None:
        if self._connection is None:
            return
        await self._connection.close()
        self._connection = None
        logger.debug(f"Closed session database {self.db_path}")

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Run several statements atomically.

        Usage:
            async with db.transaction() as conn:
                await conn.execute(...)
        """
        conn = self.connection
        async with self._lock:
            await conn.execute("BEGIN")
            try:
                yield conn
            except BaseException:
                await conn.execute("ROLLBACK")
                raise
            await conn.execute("COMMIT")

    async def execute(self, query: str, params: Params = ()) -> int:
        """Run one write statement and return the affected row count."""
        conn = self.connection
        async with self._lock:
            cursor = await conn.execute(query, params)
            return cursor.rowcount

    async def fetch_one(self, query: str, params: Params = ()) -> dict[str, Any] | None:
        async with self.connection.execute(query, params) as cursor:
            row = await cursor.fetchone()
        return dict(row) if row is not None else None

    async def fetch_all(self, query: str, params: Params = ()) -> list[dict[str, Any]]:
        async with self.connection.execute(query, params) as cursor:
            return [dict(row) for row in await cursor.fetchall()]

    async def check_integrity(self) -> bool:
        """Run ``PRAGMA integrity_check``; False means the file is damaged."""
        async with self.connection.execute("PRAGMA integrity_check") as cursor:
            row = await cursor.fetchone()

        if row is None or row[0] != "ok":
            logger.error(f"Integrity check failed for {self.db_path}: {row[0] if row else 'no result'}")
            return False
        return True


async def init_database(db_path: Path) -> Database:
    """Open (and if needed create) the database at ``db_path``."""
    db = Database(db_path)
    await db.connect()
    return db
