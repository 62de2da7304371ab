"""
The bot's one aiosqlite connection.

Opened once at startup by ``fabricbot.main`` and shared by every repository.
Write transactions are serialised with an ``asyncio.Lock`` because SQLite
allows a single writer; reads go straight to the connection.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import aiosqlite

from fabricbot.database.db_schema import SchemaManager
from fabricbot.util.logger import get_logger

logger = get_logger("database_connection")

_PRAGMAS = (
    "PRAGMA journal_mode = WAL",
    "PRAGMA synchronous = NORMAL",
    "PRAGMA busy_timeout = 5000",
)


class ConnectionManager:
    """Owns the connection; use :meth:`read` for queries and :meth:`transaction` for writes."""

    def __init__(self) -> None:
        self._conn: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()

    async def open(self, path: Path) -> None:
        """Connect to ``path`` (creating its directory) and make sure the schema exists."""
        if self._conn is not None:
            logger.warning("[DB CONNECTION] Already open; ignoring open(%s)", path)
            return

        path.parent.mkdir(parents=True, exist_ok=True)
        conn = await aiosqlite.connect(path)
        for pragma in _PRAGMAS:
            await conn.execute(pragma)
        await SchemaManager.initialize_schema(conn)
        self._conn = conn
        logger.info("[DB CONNECTION] Opened %s", path)

    async def close(self) -> None:
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        try:
            await conn.execute("PRAGMA wal_checkpoint(TRUNCATE)")
        except aiosqlite.Error:
            logger.exception("[DB CONNECTION] WAL checkpoint failed during close")
        finally:
            await conn.close()
        logger.info("[DB CONNECTION] Closed")

    def _require(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("Database is not open; call db_connection.open(path) at startup")
        return self._conn

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Serialised write: commits on clean exit, rolls back and re-raises on error."""
        conn = self._require()
        async with self._write_lock:
            try:
                yield conn
                await conn.commit()
            except Exception:
                await conn.rollback()
                raise

    @asynccontextmanager
    async def read(self) -> AsyncIterator[aiosqlite.Connection]:
        yield self._require()


db_connection = ConnectionManager()
