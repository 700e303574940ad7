"""
SQLite adaptive rate limit store.

Shares the ``rate_limits`` table with the plain store, using the ``priority``
column to tell user and background requests apart. Activity metrics are
rebuilt from the table when the cached capacity split goes stale.
"""
from typing import Any, Dict, List, Mapping, Optional, Tuple

from sqlalchemy import and_, delete, func, insert, or_, select

from comic_vine_stores import (
    DEFAULT_ADAPTIVE_RATE_LIMIT_CONFIG,
    AdaptiveCapacityCalculator,
    AdaptiveConfigInput,
    AdaptiveRateLimitStatus,
    AdaptiveRateLimitStore,
    CachedCapacity,
    CapacityPlanner,
    RateLimitConfig,
    RequestPriority,
    ResourceConfigRegistry,
    adaptive_wait_time,
    clock,
    is_admitted,
    remaining_for,
    to_adaptive_status,
)

from .base import SQLiteStoreBase
from .database import MEMORY_PATH, SQLiteDatabase
from .schema import rate_limits_table as rate_limits

History = Dict[RequestPriority, List[int]]

_USER = RequestPriority.USER.value


def _expired_rows(cutoff: int, resource: Optional[str] = None):
    """
    Rows at or before ``cutoff``, except the newest user request of each
    resource, which is kept to measure sustained inactivity.
    """
    newer = rate_limits.alias("newer")
    newest_user = (
        select(func.max(newer.c.timestamp))
        .where(newer.c.resource == rate_limits.c.resource, newer.c.priority == _USER)
        .scalar_subquery()
    )
    condition = and_(
        rate_limits.c.timestamp <= cutoff,
        or_(
            rate_limits.c.priority != _USER,
            rate_limits.c.timestamp < newest_user,
        ),
    )
    if resource is not None:
        condition = and_(rate_limits.c.resource == resource, condition)
    return condition


class SQLiteAdaptiveRateLimitStore(SQLiteStoreBase, AdaptiveRateLimitStore):
    """
    Adaptive rate limiting over the ``rate_limits`` table.
    """

    store_name = "SQLiteAdaptiveRateLimitStore"

    def __init__(
        self,
        path: str = MEMORY_PATH,
        database: Optional[SQLiteDatabase] = None,
        cleanup_interval_ms: int = 300_000,
        adaptive_config: AdaptiveConfigInput = None,
        default_config: Optional[RateLimitConfig] = None,
        resource_configs: Optional[Mapping[str, RateLimitConfig]] = None,
    ) -> None:
        super().__init__(path, database, cleanup_interval_ms)
        self._calculator = AdaptiveCapacityCalculator(adaptive_config)
        self._planner = CapacityPlanner(self._calculator)
        self._configs = ResourceConfigRegistry(
            default_config or DEFAULT_ADAPTIVE_RATE_LIMIT_CONFIG, resource_configs
        )

    @property
    def calculator(self) -> AdaptiveCapacityCalculator:
        return self._calculator

    def _retention_ms(self, resource: Optional[str] = None) -> int:
        cfg = self._calculator.config
        window = (
            self._configs.get(resource).window_ms
            if resource is not None
            else self._configs.max_window_ms()
        )
        return max(window, cfg.monitoring_window_ms)

    async def _history(self, resource: str, now: int) -> Tuple[History, Optional[int]]:
        """Timestamps per priority within retention, plus the latest user request."""
        cutoff = now - self._retention_ms(resource)
        async with self._db.transaction() as conn:
            rows = (
                await conn.execute(
                    select(rate_limits.c.timestamp, rate_limits.c.priority)
                    .where(rate_limits.c.resource == resource, rate_limits.c.timestamp > cutoff)
                    .order_by(rate_limits.c.timestamp)
                )
            ).all()
            last_user = (
                await conn.execute(
                    select(func.max(rate_limits.c.timestamp)).where(
                        rate_limits.c.resource == resource, rate_limits.c.priority == _USER
                    )
                )
            ).scalar_one()
        history: History = {priority: [] for priority in RequestPriority}
        for timestamp, priority in rows:
            history[RequestPriority(priority)].append(timestamp)
        return history, last_user

    def _capacity(
        self, resource: str, history: History, last_user: Optional[int], now: int
    ) -> CachedCapacity:
        cached = self._planner.get_cached(resource, now)
        if cached is not None:
            return cached
        metrics = self._calculator.build_metrics(
            history[RequestPriority.USER], history[RequestPriority.BACKGROUND], now
        )
        return self._planner.recalculate(
            resource,
            self._configs.get(resource).limit,
            metrics,
            now,
            last_user_request_at=last_user,
        )

    def _in_window(self, resource: str, timestamps: List[int], now: int) -> List[int]:
        cutoff = now - self._configs.get(resource).window_ms
        return [t for t in timestamps if t > cutoff]

    async def can_proceed(
        self, resource: str, priority: Optional[RequestPriority] = None
    ) -> bool:
        self._ensure_open("can_proceed")
        priority = RequestPriority(priority or RequestPriority.BACKGROUND)
        if self._configs.get(resource).limit <= 0:
            return False
        now = clock.now_ms()
        history, last_user = await self._history(resource, now)
        capacity = self._capacity(resource, history, last_user, now)
        used = len(self._in_window(resource, history[priority], now))
        return is_admitted(capacity.result, priority, used)

    async def record(
        self, resource: str, priority: Optional[RequestPriority] = None
    ) -> None:
        self._ensure_open("record")
        priority = RequestPriority(priority or RequestPriority.BACKGROUND)
        now = clock.now_ms()
        cutoff = now - self._retention_ms(resource)
        async with self._db.transaction() as conn:
            await conn.execute(delete(rate_limits).where(_expired_rows(cutoff, resource)))
            await conn.execute(
                insert(rate_limits).values(
                    resource=resource, timestamp=now, priority=priority.value
                )
            )

    async def get_status(
        self, resource: str, priority: Optional[RequestPriority] = None
    ) -> AdaptiveRateLimitStatus:
        self._ensure_open("get_status")
        config = self._configs.get(resource)
        now = clock.now_ms()
        history, last_user = await self._history(resource, now)
        capacity = self._capacity(resource, history, last_user, now)
        used = {p: self._in_window(resource, history[p], now) for p in RequestPriority}

        if priority is not None:
            priority = RequestPriority(priority)
            remaining = remaining_for(capacity.result, priority, len(used[priority]))
        else:
            remaining = sum(
                remaining_for(capacity.result, p, len(used[p])) for p in RequestPriority
            )

        oldest = min((ts[0] for ts in used.values() if ts), default=now)
        return AdaptiveRateLimitStatus(
            remaining=remaining,
            reset_time=clock.to_datetime(oldest + config.window_ms),
            limit=config.limit,
            adaptive=to_adaptive_status(capacity),
        )

    async def reset(self, resource: str) -> None:
        self._ensure_open("reset")
        async with self._db.transaction() as conn:
            await conn.execute(delete(rate_limits).where(rate_limits.c.resource == resource))
        self._planner.invalidate(resource)

    async def get_wait_time(
        self, resource: str, priority: Optional[RequestPriority] = None
    ) -> int:
        self._ensure_open("get_wait_time")
        priority = RequestPriority(priority or RequestPriority.BACKGROUND)
        config = self._configs.get(resource)
        if config.limit <= 0:
            return config.window_ms
        now = clock.now_ms()
        history, last_user = await self._history(resource, now)
        capacity = self._capacity(resource, history, last_user, now)
        return adaptive_wait_time(
            capacity.result,
            priority,
            self._in_window(resource, history[priority], now),
            config.window_ms,
            now,
            self._planner.time_until_recalculation(resource, now),
        )

    def get_resource_config(self, resource: str) -> RateLimitConfig:
        return self._configs.get(resource)

    def set_resource_config(self, resource: str, config: RateLimitConfig) -> None:
        self._configs.set(resource, config)
        self._planner.invalidate(resource)

    async def cleanup(self) -> int:
        """Delete records no longer needed for windows or activity metrics."""
        cutoff = clock.now_ms() - self._retention_ms()
        async with self._db.transaction() as conn:
            result = await conn.execute(delete(rate_limits).where(_expired_rows(cutoff)))
        return result.rowcount

    async def _on_close(self) -> None:
        self._planner.clear()


def create_sqlite_adaptive_rate_limit_store(**kwargs: Any) -> SQLiteAdaptiveRateLimitStore:
    """Create a new SQLiteAdaptiveRateLimitStore instance"""
    return SQLiteAdaptiveRateLimitStore(**kwargs)
