"""
In-memory adaptive rate limit store.

User and background requests are tracked separately. Capacity between the two
classes is recalculated from recent history at most once per recalculation
interval.
"""
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, List, Mapping, Optional

from comic_vine_stores import (
    DEFAULT_ADAPTIVE_RATE_LIMIT_CONFIG,
    AdaptiveCapacityCalculator,
    AdaptiveConfigInput,
    AdaptiveRateLimitStatus,
    AdaptiveRateLimitStore,
    CachedCapacity,
    CapacityPlanner,
    PeriodicSweeper,
    RateLimitConfig,
    RequestPriority,
    ResourceConfigRegistry,
    StoreDestroyedError,
    adaptive_wait_time,
    clock,
    is_admitted,
    remaining_for,
    to_adaptive_status,
)


@dataclass
class MemoryAdaptiveRateLimitStats:
    total_resources: int
    user_requests: int
    background_requests: int
    paused_resources: int


class MemoryAdaptiveRateLimitStore(AdaptiveRateLimitStore):
    """
    In-memory implementation of AdaptiveRateLimitStore.
    """

    def __init__(
        self,
        adaptive_config: AdaptiveConfigInput = None,
        default_config: Optional[RateLimitConfig] = None,
        resource_configs: Optional[Mapping[str, RateLimitConfig]] = None,
        cleanup_interval_ms: int = 60_000,
    ) -> None:
        """
        Create a new MemoryAdaptiveRateLimitStore.

        Args:
            adaptive_config: AdaptiveConfig or a mapping of its fields
            default_config: Budget for resources without an override. Default: 200 per hour
            resource_configs: Per-resource overrides
            cleanup_interval_ms: How often stale timestamps are swept. 0 disables it
        """
        self._calculator = AdaptiveCapacityCalculator(adaptive_config)
        self._planner = CapacityPlanner(self._calculator)
        self._configs = ResourceConfigRegistry(
            default_config or DEFAULT_ADAPTIVE_RATE_LIMIT_CONFIG, resource_configs
        )
        self._requests: Dict[str, Dict[RequestPriority, Deque[int]]] = {}
        self._last_user_request: Dict[str, int] = {}
        self._sweeper = PeriodicSweeper(
            "MemoryAdaptiveRateLimitStore", cleanup_interval_ms, self._sweep
        )
        self._closed = False

    @property
    def calculator(self) -> AdaptiveCapacityCalculator:
        return self._calculator

    def _ensure_open(self, operation: str) -> None:
        if self._closed:
            raise StoreDestroyedError("MemoryAdaptiveRateLimitStore", operation)
        self._sweeper.ensure_started()

    def _retention_ms(self, resource: str) -> int:
        return max(
            self._configs.get(resource).window_ms,
            self._calculator.config.monitoring_window_ms,
        )

    def _history(self, resource: str, now: int) -> Dict[RequestPriority, Deque[int]]:
        history = self._requests.setdefault(
            resource, {priority: deque() for priority in RequestPriority}
        )
        cutoff = now - self._retention_ms(resource)
        for requests in history.values():
            while requests and requests[0] <= cutoff:
                requests.popleft()
        return history

    def _in_window(self, resource: str, priority: RequestPriority, now: int) -> List[int]:
        cutoff = now - self._configs.get(resource).window_ms
        return [t for t in self._history(resource, now)[priority] if t > cutoff]

    def _capacity(self, resource: str, now: int) -> CachedCapacity:
        cached = self._planner.get_cached(resource, now)
        if cached is not None:
            return cached
        history = self._history(resource, now)
        metrics = self._calculator.build_metrics(
            history[RequestPriority.USER], history[RequestPriority.BACKGROUND], now
        )
        return self._planner.recalculate(
            resource,
            self._configs.get(resource).limit,
            metrics,
            now,
            last_user_request_at=self._last_user_request.get(resource),
        )

    async def can_proceed(
        self, resource: str, priority: Optional[RequestPriority] = None
    ) -> bool:
        self._ensure_open("can_proceed")
        priority = RequestPriority(priority or RequestPriority.BACKGROUND)
        if self._configs.get(resource).limit <= 0:
            return False
        now = clock.now_ms()
        capacity = self._capacity(resource, now)
        used = len(self._in_window(resource, priority, now))
        return is_admitted(capacity.result, priority, used)

    async def record(
        self, resource: str, priority: Optional[RequestPriority] = None
    ) -> None:
        self._ensure_open("record")
        priority = RequestPriority(priority or RequestPriority.BACKGROUND)
        now = clock.now_ms()
        self._history(resource, now)[priority].append(now)
        if priority == RequestPriority.USER:
            self._last_user_request[resource] = now

    async def get_status(
        self, resource: str, priority: Optional[RequestPriority] = None
    ) -> AdaptiveRateLimitStatus:
        self._ensure_open("get_status")
        config = self._configs.get(resource)
        now = clock.now_ms()
        capacity = self._capacity(resource, now)
        used = {p: self._in_window(resource, p, now) for p in RequestPriority}

        if priority is not None:
            priority = RequestPriority(priority)
            remaining = remaining_for(capacity.result, priority, len(used[priority]))
        else:
            remaining = sum(
                remaining_for(capacity.result, p, len(used[p])) for p in RequestPriority
            )

        timestamps = sorted(used[RequestPriority.USER] + used[RequestPriority.BACKGROUND])
        reset_at = timestamps[0] + config.window_ms if timestamps else now + config.window_ms
        return AdaptiveRateLimitStatus(
            remaining=remaining,
            reset_time=clock.to_datetime(reset_at),
            limit=config.limit,
            adaptive=to_adaptive_status(capacity),
        )

    async def reset(self, resource: str) -> None:
        self._ensure_open("reset")
        self._requests.pop(resource, None)
        self._last_user_request.pop(resource, None)
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
        capacity = self._capacity(resource, now)
        return adaptive_wait_time(
            capacity.result,
            priority,
            self._in_window(resource, priority, now),
            config.window_ms,
            now,
            self._planner.time_until_recalculation(resource, now),
        )

    def get_resource_config(self, resource: str) -> RateLimitConfig:
        return self._configs.get(resource)

    def set_resource_config(self, resource: str, config: RateLimitConfig) -> None:
        self._configs.set(resource, config)
        self._planner.invalidate(resource)

    def get_stats(self) -> MemoryAdaptiveRateLimitStats:
        """Requests inside each resource's window, and how many resources have background paused."""
        now = clock.now_ms()
        user = background = paused = 0
        for resource in list(self._requests):
            user += len(self._in_window(resource, RequestPriority.USER, now))
            background += len(self._in_window(resource, RequestPriority.BACKGROUND, now))
            cached = self._planner.get_cached(resource, now)
            if cached is not None and cached.result.background_paused:
                paused += 1
        return MemoryAdaptiveRateLimitStats(
            total_resources=len(self._requests),
            user_requests=user,
            background_requests=background,
            paused_resources=paused,
        )

    async def _sweep(self) -> None:
        self.cleanup()

    def cleanup(self) -> None:
        """Drop timestamps past retention and forget idle resources."""
        now = clock.now_ms()
        for resource in list(self._requests):
            history = self._history(resource, now)
            if not any(history.values()):
                del self._requests[resource]

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._sweeper.stop()
        self._requests.clear()
        self._last_user_request.clear()
        self._planner.clear()


def create_memory_adaptive_rate_limit_store(**kwargs: Any) -> MemoryAdaptiveRateLimitStore:
    """Create a new MemoryAdaptiveRateLimitStore instance"""
    return MemoryAdaptiveRateLimitStore(**kwargs)
