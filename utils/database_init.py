import os
import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

import aiosqlite

DB_FILENAME = "imgbed.db"

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS kv_string (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS kv_set (
        key TEXT NOT NULL,
        member TEXT NOT NULL,
        PRIMARY KEY (key, member)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS kv_zset (
        key TEXT NOT NULL,
        member TEXT NOT NULL,
        score NUMERIC NOT NULL,
        PRIMARY KEY (key, member)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_kv_zset_score ON kv_zset(key, score)",
    """
    CREATE TABLE IF NOT EXISTS kv_hash (
        key TEXT NOT NULL,
        field TEXT NOT NULL,
        value TEXT NOT NULL,
        PRIMARY KEY (key, field)
    )
    """,
)

_TABLES = ("kv_string", "kv_set", "kv_zset", "kv_hash")


def _resolve_db_dir(db_dir: Optional[Path | str]) -> Path:
    """Return the database directory, creating it when needed."""
    raw = str(db_dir) if db_dir is not None else os.getenv("DATABASE_DIR", "")
    if not raw.strip():
        raise RuntimeError(
            "DATABASE_DIR is not set; point it at a writable directory "
            "that will hold the metadata store."
        )

    path = Path(raw).expanduser()
    if path.exists() and not path.is_dir():
        raise RuntimeError(f"DATABASE_DIR={raw!r} is a file, expected a directory ({path}).")
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise RuntimeError(f"Cannot create database directory {path}") from exc
    return path


class AsyncDatabaseInitializer:
    """
    Manage the async SQLite file that backs the key-value metadata store.

    - The database file is located at: <DATABASE_DIR>/imgbed.db
    - The directory comes from the `db_dir` argument or, when omitted, the
      DATABASE_DIR environment variable. A RuntimeError is raised if neither
      is usable (not a directory and cannot be created).
    - The first call to `ensure_database()` creates the KV tables if they
      are missing. Existing data is kept; `reset()` wipes it explicitly.
    - Subsequent calls to `ensure_database()` on the same instance are no-ops,
      so it is safe for `connection()` to call it.
    """

    def __init__(self, db_dir: Optional[Path | str] = None) -> None:
        self.db_dir = _resolve_db_dir(db_dir)
        self.db_path = self.db_dir / DB_FILENAME
        self._initialized = False

    async def ensure_database(self) -> None:
        """
        Ensure the SQLite database at `self.db_path` has the KV tables.

        Subsequent calls on the same instance are no-ops.
        """
        if self._initialized:
            return

        max_attempts = 3
        for attempt in range(1, max_attempts + 1):
            try:
                async with aiosqlite.connect(self.db_path) as db:
                    await db.execute("PRAGMA journal_mode=WAL;")
                    for statement in _SCHEMA:
                        await db.execute(statement)
                    await db.commit()
                break
            except FileNotFoundError:
                # On some platforms a transient missing file error may occur; retry a few times.
                if attempt >= max_attempts:
                    raise
                await asyncio.sleep(0.1 * attempt)

        self._initialized = True

    async def reset(self) -> None:
        """Delete every key from every KV table."""
        async with self.connection() as conn:
            for table in _TABLES:
                await conn.execute(f"DELETE FROM {table}")
            await conn.commit()

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Async context manager yielding an `aiosqlite.Connection`.

        The tables are created on first use via `ensure_database()`.
        """
        await self.ensure_database()
        conn = await aiosqlite.connect(self.db_path)
        try:
            yield conn
        finally:
            await conn.close()
