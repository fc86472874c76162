"""
Async SQLite helpers for the thread store.

Every call opens a fresh connection so several processes sharing the same
database file always observe each other's writes.

Usage:
    async with get_db() as conn:
        async with conn.execute("SELECT * FROM threads WHERE thread_id = ?", (tid,)) as cur:
            row = await cur.fetchone()   # aiosqlite.Row, supports row["column"]
"""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

import aiosqlite

from chain_agent.core.config import get_settings

THREADS_SCHEMA = """
CREATE TABLE IF NOT EXISTS threads (
    thread_id          TEXT PRIMARY KEY,
    messages           TEXT NOT NULL,
    tool_calls         TEXT NOT NULL DEFAULT '[]',
    has_loaded_history INTEGER NOT NULL DEFAULT 0,
    revision           INTEGER NOT NULL DEFAULT 1,
    created_at         TEXT NOT NULL,
    updated_at         TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_threads_updated_at ON threads(updated_at);
"""


def resolve_db_path(db_path: str | None = None) -> str:
    return str(Path(db_path or get_settings().thread_db_path).expanduser())


@asynccontextmanager
async def get_db(db_path: str | None = None) -> AsyncGenerator[aiosqlite.Connection, None]:
    """
    Yields an aiosqlite connection with aiosqlite.Row as the row factory.
    Closes cleanly on exit. Writes must be committed by the caller.
    """
    conn = await aiosqlite.connect(resolve_db_path(db_path))
    try:
        conn.row_factory = aiosqlite.Row
        await conn.execute("PRAGMA busy_timeout = 5000")
        yield conn
    finally:
        await conn.close()


async def create_schema(db_path: str | None = None) -> None:
    """Create the threads table if it does not exist. Safe to call on every startup."""
    path = Path(resolve_db_path(db_path))
    path.parent.mkdir(parents=True, exist_ok=True)
    async with get_db(str(path)) as conn:
        await conn.execute("PRAGMA journal_mode=WAL")
        await conn.executescript(THREADS_SCHEMA)
        await conn.commit()
