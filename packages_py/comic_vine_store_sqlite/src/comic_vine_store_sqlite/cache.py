"""
SQLite cache store.
"""
import logging
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from comic_vine_stores import (
    CacheStore,
    SerializationError,
    clock,
    decode_value,
    encode_value,
)

from .base import SQLiteStoreBase
from .schema import cache_table

logger = logging.getLogger(__name__)


@dataclass
class SQLiteCacheStats:
    total_items: int
    expired_items: int


class SQLiteCacheStore(SQLiteStoreBase, CacheStore):
    """
    Cache entries persisted in the ``cache`` table.
    Survives process restarts when backed by a file.
    """

    store_name = "SQLiteCacheStore"

    async def get(self, key: str) -> Optional[Any]:
        self._ensure_open("get")
        async with self._db.transaction() as conn:
            row = (
                await conn.execute(
                    select(cache_table.c.value, cache_table.c.expires_at).where(
                        cache_table.c.hash == key
                    )
                )
            ).first()
        if row is None:
            return None

        if row.expires_at <= clock.now_ms():
            await self._discard(key, "expired")
            return None

        try:
            return decode_value(row.value, operation="get")
        except SerializationError:
            logger.warning(f"SQLiteCacheStore: purging corrupt entry {key}")
            await self._discard(key, "corrupt")
            return None

    async def _discard(self, key: str, reason: str) -> None:
        """Best-effort removal of an unreadable entry."""
        try:
            async with self._db.transaction() as conn:
                await conn.execute(delete(cache_table).where(cache_table.c.hash == key))
        except Exception as e:
            logger.warning(f"SQLiteCacheStore: failed to remove {reason} entry {key}: {e}")

    async def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        self._ensure_open("set")
        payload = encode_value(value, operation="set")
        now = clock.now_ms()
        stmt = sqlite_insert(cache_table).values(
            hash=key,
            value=payload,
            expires_at=now + int(max(ttl_seconds, 0) * 1000),
            created_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[cache_table.c.hash],
            set_={
                "value": stmt.excluded.value,
                "expires_at": stmt.excluded.expires_at,
                "created_at": stmt.excluded.created_at,
            },
        )
        async with self._db.transaction() as conn:
            await conn.execute(stmt)

    async def delete(self, key: str) -> None:
        self._ensure_open("delete")
        async with self._db.transaction() as conn:
            await conn.execute(delete(cache_table).where(cache_table.c.hash == key))

    async def clear(self) -> None:
        self._ensure_open("clear")
        async with self._db.transaction() as conn:
            await conn.execute(delete(cache_table))

    async def cleanup(self) -> int:
        """Delete expired entries. Returns how many were removed."""
        async with self._db.transaction() as conn:
            result = await conn.execute(
                delete(cache_table).where(cache_table.c.expires_at <= clock.now_ms())
            )
        if result.rowcount:
            logger.debug(f"SQLiteCacheStore: removed {result.rowcount} expired entries")
        return result.rowcount

    async def get_stats(self) -> SQLiteCacheStats:
        self._ensure_open("get_stats")
        now = clock.now_ms()
        async with self._db.transaction() as conn:
            total = (await conn.execute(select(func.count()).select_from(cache_table))).scalar_one()
            expired = (
                await conn.execute(
                    select(func.count())
                    .select_from(cache_table)
                    .where(cache_table.c.expires_at <= now)
                )
            ).scalar_one()
        return SQLiteCacheStats(total_items=total, expired_items=expired)


def create_sqlite_cache_store(**kwargs: Any) -> SQLiteCacheStore:
    """Create a new SQLiteCacheStore instance"""
    return SQLiteCacheStore(**kwargs)
