"""Async key-value primitives on top of SQLite.

`KVStore` offers the small command set the metadata layer needs from a
Redis-like store: string values, sets, sorted sets and hashes. Every method
opens its own connection and commits before returning, so each call is
atomic on its own and no call spans several records.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Sequence

from utils.database_init import AsyncDatabaseInitializer


class KVStore:
    """Redis-style commands backed by the tables of `AsyncDatabaseInitializer`."""

    def __init__(self, db_initializer: AsyncDatabaseInitializer) -> None:
        self._db = db_initializer

    # strings

    async def get(self, key: str) -> Optional[str]:
        async with self._db.connection() as conn:
            cur = await conn.execute("SELECT value FROM kv_string WHERE key = ?", (key,))
            row = await cur.fetchone()
            return row[0] if row else None

    async def mget(self, keys: Sequence[str]) -> List[Optional[str]]:
        """Return values for `keys` in order, None where a key is missing."""
        if not keys:
            return []
        found: Dict[str, str] = {}
        async with self._db.connection() as conn:
            # stay well below SQLite's bound-parameter limit
            for start in range(0, len(keys), 500):
                chunk = list(keys[start:start + 500])
                placeholders = ", ".join("?" for _ in chunk)
                cur = await conn.execute(
                    f"SELECT key, value FROM kv_string WHERE key IN ({placeholders})", chunk
                )
                found.update({k: v for k, v in await cur.fetchall()})
        return [found.get(key) for key in keys]

    async def set(self, key: str, value: str) -> None:
        async with self._db.connection() as conn:
            await conn.execute(
                "INSERT INTO kv_string (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, value),
            )
            await conn.commit()

    async def delete(self, *keys: str) -> int:
        """Delete keys of any type. Returns how many keys existed."""
        removed = 0
        async with self._db.connection() as conn:
            for key in keys:
                for table in ("kv_string", "kv_set", "kv_zset", "kv_hash"):
                    cur = await conn.execute(f"DELETE FROM {table} WHERE key = ?", (key,))
                    if cur.rowcount:
                        removed += 1
                        break
            await conn.commit()
        return removed

    async def keys(self, prefix: str) -> List[str]:
        """List string keys starting with `prefix`."""
        async with self._db.connection() as conn:
            cur = await conn.execute(
                "SELECT key FROM kv_string WHERE substr(key, 1, ?) = ? ORDER BY key",
                (len(prefix), prefix),
            )
            return [row[0] for row in await cur.fetchall()]

    # sets

    async def sadd(self, key: str, *members: str) -> int:
        added = 0
        async with self._db.connection() as conn:
            for member in members:
                cur = await conn.execute(
                    "INSERT OR IGNORE INTO kv_set (key, member) VALUES (?, ?)", (key, member)
                )
                added += cur.rowcount
            await conn.commit()
        return added

    async def srem(self, key: str, *members: str) -> int:
        removed = 0
        async with self._db.connection() as conn:
            for member in members:
                cur = await conn.execute(
                    "DELETE FROM kv_set WHERE key = ? AND member = ?", (key, member)
                )
                removed += cur.rowcount
            await conn.commit()
        return removed

    async def smembers(self, key: str) -> List[str]:
        async with self._db.connection() as conn:
            cur = await conn.execute("SELECT member FROM kv_set WHERE key = ? ORDER BY member", (key,))
            return [row[0] for row in await cur.fetchall()]

    async def sreplace(self, key: str, members: Iterable[str]) -> None:
        """Replace the whole set in one transaction."""
        async with self._db.connection() as conn:
            await conn.execute("DELETE FROM kv_set WHERE key = ?", (key,))
            await conn.executemany(
                "INSERT OR IGNORE INTO kv_set (key, member) VALUES (?, ?)",
                [(key, member) for member in members],
            )
            await conn.commit()

    # sorted sets

    async def zadd(self, key: str, member: str, score: int | float) -> None:
        async with self._db.connection() as conn:
            await conn.execute(
                "INSERT INTO kv_zset (key, member, score) VALUES (?, ?, ?) "
                "ON CONFLICT(key, member) DO UPDATE SET score = excluded.score",
                (key, member, score),
            )
            await conn.commit()

    async def zrem(self, key: str, member: str) -> int:
        async with self._db.connection() as conn:
            cur = await conn.execute(
                "DELETE FROM kv_zset WHERE key = ? AND member = ?", (key, member)
            )
            await conn.commit()
            return cur.rowcount

    async def zrange(self, key: str, start: int = 0, stop: int = -1, rev: bool = False) -> List[str]:
        """Members ordered by score, with Redis-style inclusive `start`/`stop` indexes."""
        order = "DESC" if rev else "ASC"
        async with self._db.connection() as conn:
            cur = await conn.execute(
                f"SELECT member FROM kv_zset WHERE key = ? ORDER BY score {order}, member {order}",
                (key,),
            )
            members = [row[0] for row in await cur.fetchall()]
        end = None if stop == -1 else stop + 1
        return members[start:end]

    # hashes

    async def hgetall(self, key: str) -> Dict[str, str]:
        async with self._db.connection() as conn:
            cur = await conn.execute("SELECT field, value FROM kv_hash WHERE key = ?", (key,))
            return {field: value for field, value in await cur.fetchall()}

    async def hset(self, key: str, mapping: Dict[str, object]) -> None:
        async with self._db.connection() as conn:
            await conn.executemany(
                "INSERT INTO kv_hash (key, field, value) VALUES (?, ?, ?) "
                "ON CONFLICT(key, field) DO UPDATE SET value = excluded.value",
                [(key, field, str(value)) for field, value in mapping.items()],
            )
            await conn.commit()

    async def hincrby(self, key: str, field: str, amount: int, floor: Optional[int] = None) -> int:
        """Add `amount` to an integer hash field, clamping at `floor` when given."""
        async with self._db.connection() as conn:
            cur = await conn.execute(
                "SELECT value FROM kv_hash WHERE key = ? AND field = ?", (key, field)
            )
            row = await cur.fetchone()
            try:
                current = int(row[0]) if row else 0
            except ValueError:
                current = 0
            value = current + amount
            if floor is not None:
                value = max(value, floor)
            await conn.execute(
                "INSERT INTO kv_hash (key, field, value) VALUES (?, ?, ?) "
                "ON CONFLICT(key, field) DO UPDATE SET value = excluded.value",
                (key, field, str(value)),
            )
            await conn.commit()
            return value
