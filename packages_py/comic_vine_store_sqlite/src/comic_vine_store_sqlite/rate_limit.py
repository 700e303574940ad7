"""
SQLite sliding window rate limit store.
"""
from typing import Any, Mapping, Optional

from sqlalchemy import and_, delete, func, insert, select
from sqlalchemy.ext.asyncio import AsyncConnection

from comic_vine_stores import (
    RateLimitConfig,
    RateLimitStatus,
    RateLimitStore,
    ResourceConfigRegistry,
    clock,
)

from .base import SQLiteStoreBase
from .database import MEMORY_PATH, SQLiteDatabase
from .schema import rate_limits_table as rate_limits


class SQLiteRateLimitStore(SQLiteStoreBase, RateLimitStore):
    """
    One row per admitted request in the ``rate_limits`` table. Requests are
    counted over the trailing window, so every process sharing the file sees
    the same budget.
    """

    store_name = "SQLiteRateLimitStore"

    def __init__(
        self,
        path: str = MEMORY_PATH,
        database: Optional[SQLiteDatabase] = None,
        cleanup_interval_ms: int = 300_000,
        default_config: Optional[RateLimitConfig] = None,
        resource_configs: Optional[Mapping[str, RateLimitConfig]] = None,
    ) -> None:
        super().__init__(path, database, cleanup_interval_ms)
        self._configs = ResourceConfigRegistry(default_config, resource_configs)

    def _in_window(self, resource: str, now: int):
        cutoff = now - self._configs.get(resource).window_ms
        return and_(rate_limits.c.resource == resource, rate_limits.c.timestamp > cutoff)

    async def _count(self, conn: AsyncConnection, resource: str, now: int) -> int:
        return (
            await conn.execute(
                select(func.count())
                .select_from(rate_limits)
                .where(self._in_window(resource, now))
            )
        ).scalar_one()

    async def can_proceed(self, resource: str) -> bool:
        self._ensure_open("can_proceed")
        config = self._configs.get(resource)
        if config.limit <= 0:
            return False
        async with self._db.transaction() as conn:
            count = await self._count(conn, resource, clock.now_ms())
        return count < config.limit

    async def record(self, resource: str) -> None:
        self._ensure_open("record")
        now = clock.now_ms()
        cutoff = now - self._configs.get(resource).window_ms
        async with self._db.transaction() as conn:
            await conn.execute(
                delete(rate_limits).where(
                    rate_limits.c.resource == resource, rate_limits.c.timestamp <= cutoff
                )
            )
            await conn.execute(insert(rate_limits).values(resource=resource, timestamp=now))

    async def get_status(self, resource: str) -> RateLimitStatus:
        self._ensure_open("get_status")
        config = self._configs.get(resource)
        now = clock.now_ms()
        async with self._db.transaction() as conn:
            row = (
                await conn.execute(
                    select(func.count(), func.min(rate_limits.c.timestamp)).where(
                        self._in_window(resource, now)
                    )
                )
            ).one()
        count, oldest = row
        reset_at = (oldest if oldest is not None else now) + config.window_ms
        return RateLimitStatus(
            remaining=max(0, config.limit - count),
            reset_time=clock.to_datetime(reset_at),
            limit=config.limit,
        )

    async def reset(self, resource: str) -> None:
        self._ensure_open("reset")
        async with self._db.transaction() as conn:
            await conn.execute(delete(rate_limits).where(rate_limits.c.resource == resource))

    async def get_wait_time(self, resource: str) -> int:
        self._ensure_open("get_wait_time")
        config = self._configs.get(resource)
        if config.limit <= 0:
            return config.window_ms
        now = clock.now_ms()
        async with self._db.transaction() as conn:
            count = await self._count(conn, resource, now)
            if count < config.limit:
                return 0
            # The request whose expiry frees a slot
            blocking = (
                await conn.execute(
                    select(rate_limits.c.timestamp)
                    .where(self._in_window(resource, now))
                    .order_by(rate_limits.c.timestamp)
                    .offset(count - config.limit)
                    .limit(1)
                )
            ).scalar_one()
        return min(config.window_ms, max(1, blocking + config.window_ms - now))

    def get_resource_config(self, resource: str) -> RateLimitConfig:
        return self._configs.get(resource)

    def set_resource_config(self, resource: str, config: RateLimitConfig) -> None:
        self._configs.set(resource, config)

    async def cleanup(self) -> int:
        """Delete records older than the longest configured window."""
        cutoff = clock.now_ms() - self._configs.max_window_ms()
        async with self._db.transaction() as conn:
            result = await conn.execute(
                delete(rate_limits).where(rate_limits.c.timestamp <= cutoff)
            )
        return result.rowcount


def create_sqlite_rate_limit_store(**kwargs: Any) -> SQLiteRateLimitStore:
    """Create a new SQLiteRateLimitStore instance"""
    return SQLiteRateLimitStore(**kwargs)
