"""
DynamoDB adaptive rate limit store.

Request records carry their priority in ``Data.priority``. The latest
capacity split is persisted in the ``ADAPTIVE#<resource>`` / ``META`` row so
every process shares one recalculation per interval. The time of the latest
user request lives in ``ADAPTIVE#<resource>`` / ``LAST_USER`` so sustained
inactivity can be measured after the request rows themselves have expired.
"""
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from comic_vine_stores import (
    DEFAULT_ADAPTIVE_RATE_LIMIT_CONFIG,
    AdaptiveCapacityCalculator,
    AdaptiveConfigInput,
    AdaptiveRateLimitStatus,
    AdaptiveRateLimitStore,
    CachedCapacity,
    CapacityPlanner,
    DynamicCapacityResult,
    RateLimitConfig,
    RequestPriority,
    adaptive_wait_time,
    clock,
    is_admitted,
    remaining_for,
    to_adaptive_status,
)

from . import schema
from .config import DynamoDBStoreConfigInput
from .executor import ResilientExecutor
from .monitoring import StoreMonitor
from .rate_limit import DynamoDBRequestLog
from .ttl import ttl_from_ms

logger = logging.getLogger(__name__)

History = Dict[RequestPriority, List[int]]


class DynamoDBAdaptiveRateLimitStore(DynamoDBRequestLog, AdaptiveRateLimitStore):
    """
    Adaptive rate limiting over the shared table.
    """

    store_name = "DynamoDBAdaptiveRateLimitStore"

    def __init__(
        self,
        config: DynamoDBStoreConfigInput = None,
        table: Optional[Any] = None,
        monitor: Optional[StoreMonitor] = None,
        executor: Optional[ResilientExecutor] = None,
        adaptive_config: AdaptiveConfigInput = None,
        default_config: Optional[RateLimitConfig] = None,
        resource_configs: Optional[Mapping[str, RateLimitConfig]] = None,
    ) -> None:
        super().__init__(
            config,
            table,
            monitor,
            executor,
            default_config=default_config or DEFAULT_ADAPTIVE_RATE_LIMIT_CONFIG,
            resource_configs=resource_configs,
        )
        self._calculator = AdaptiveCapacityCalculator(adaptive_config)
        self._planner = CapacityPlanner(self._calculator)

    @property
    def calculator(self) -> AdaptiveCapacityCalculator:
        return self._calculator

    def _retention_ms(self, resource: str) -> int:
        return max(
            self._configs.get(resource).window_ms,
            self._calculator.config.monitoring_window_ms,
        )

    async def _history(self, resource: str, now: int) -> Tuple[History, Optional[int]]:
        records = await self._records(resource, now - self._retention_ms(resource))
        history: History = {priority: [] for priority in RequestPriority}
        for record in records:
            data = record.get(schema.DATA) or {}
            priority = RequestPriority(data.get("priority", RequestPriority.BACKGROUND.value))
            history[priority].append(schema.parse_rate_limit_timestamp(record[schema.SK]))
        user = history[RequestPriority.USER]
        return history, (user[-1] if user else None)

    async def _load_last_user(self, resource: str) -> Optional[int]:
        response = await self._call(
            "get_last_user",
            "get_item",
            Key=schema.adaptive_last_user_key(resource),
            ConsistentRead=True,
        )
        data = (response.get("Item") or {}).get(schema.DATA) or {}
        try:
            return int(data["timestamp"])
        except (KeyError, TypeError, ValueError):
            return None

    async def _load_meta(self, resource: str, now: int) -> Optional[CachedCapacity]:
        response = await self._call(
            "get_meta", "get_item", Key=schema.adaptive_meta_key(resource), ConsistentRead=True
        )
        data = (response.get("Item") or {}).get(schema.DATA)
        if not isinstance(data, dict):
            return None
        try:
            cached = CachedCapacity(
                result=DynamicCapacityResult(
                    user_reserved=int(data["userReserved"]),
                    background_max=int(data["backgroundMax"]),
                    background_paused=bool(data["backgroundPaused"]),
                    reason=str(data["reason"]),
                ),
                calculated_at=int(data["calculatedAt"]),
                recent_user_activity=int(data.get("recentUserActivity", 0)),
            )
        except (KeyError, TypeError, ValueError):
            logger.warning(f"DynamoDBAdaptiveRateLimitStore: ignoring corrupt metadata for {resource}")
            return None
        if now - cached.calculated_at >= self._planner.interval_ms:
            return None
        return cached

    async def _save_meta(self, resource: str, cached: CachedCapacity) -> None:
        result = cached.result
        ttl = ttl_from_ms(cached.calculated_at + self._retention_ms(resource))
        await self._call(
            "put_meta",
            "put_item",
            Item={
                **schema.adaptive_meta_key(resource),
                schema.TTL: ttl,
                schema.DATA: {
                    "userReserved": result.user_reserved,
                    "backgroundMax": result.background_max,
                    "backgroundPaused": result.background_paused,
                    "reason": result.reason,
                    "recentUserActivity": cached.recent_user_activity,
                    "calculatedAt": cached.calculated_at,
                },
            },
        )

    async def _capacity(
        self, resource: str, history: History, last_user: Optional[int], now: int
    ) -> CachedCapacity:
        cached = self._planner.get_cached(resource, now)
        if cached is not None:
            return cached

        cached = await self._load_meta(resource, now)
        if cached is not None:
            self._planner.remember(resource, cached)
            return cached

        if last_user is None:
            last_user = await self._load_last_user(resource)
        metrics = self._calculator.build_metrics(
            history[RequestPriority.USER], history[RequestPriority.BACKGROUND], now
        )
        cached = self._planner.recalculate(
            resource,
            self._configs.get(resource).limit,
            metrics,
            now,
            last_user_request_at=last_user,
        )
        await self._save_meta(resource, cached)
        return cached

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
        capacity = await self._capacity(resource, history, last_user, now)
        used = len(self._in_window(resource, history[priority], now))
        return is_admitted(capacity.result, priority, used)

    async def record(
        self, resource: str, priority: Optional[RequestPriority] = None
    ) -> None:
        self._ensure_open("record")
        priority = RequestPriority(priority or RequestPriority.BACKGROUND)
        now = clock.now_ms()
        await self._put_record(resource, now, {"priority": priority.value})
        if priority == RequestPriority.USER:
            # No TTL: read long after the request rows have expired
            await self._call(
                "put_last_user",
                "put_item",
                Item={**schema.adaptive_last_user_key(resource), schema.DATA: {"timestamp": now}},
            )

    async def get_status(
        self, resource: str, priority: Optional[RequestPriority] = None
    ) -> AdaptiveRateLimitStatus:
        self._ensure_open("get_status")
        config = self._configs.get(resource)
        now = clock.now_ms()
        history, last_user = await self._history(resource, now)
        capacity = await self._capacity(resource, history, last_user, now)
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
        await self._delete_resource(resource)
        await self._call("delete_meta", "delete_item", Key=schema.adaptive_meta_key(resource))
        await self._call(
            "delete_last_user", "delete_item", Key=schema.adaptive_last_user_key(resource)
        )
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
        capacity = await self._capacity(resource, history, last_user, now)
        return adaptive_wait_time(
            capacity.result,
            priority,
            self._in_window(resource, history[priority], now),
            config.window_ms,
            now,
            self._planner.time_until_recalculation(resource, now),
        )

    def set_resource_config(self, resource: str, config: RateLimitConfig) -> None:
        super().set_resource_config(resource, config)
        self._planner.invalidate(resource)

    async def _on_close(self) -> None:
        self._planner.clear()


def create_dynamodb_adaptive_rate_limit_store(**kwargs: Any) -> DynamoDBAdaptiveRateLimitStore:
    """Create a new DynamoDBAdaptiveRateLimitStore instance"""
    return DynamoDBAdaptiveRateLimitStore(**kwargs)
