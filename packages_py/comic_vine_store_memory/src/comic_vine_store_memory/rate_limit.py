"""
In-memory sliding window rate limit store.
Suitable for single-process applications.
"""
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, Mapping, Optional

from comic_vine_stores import (
    PeriodicSweeper,
    RateLimitConfig,
    RateLimitStatus,
    RateLimitStore,
    ResourceConfigRegistry,
    StoreDestroyedError,
    clock,
)


@dataclass
class MemoryRateLimitStats:
    total_resources: int
    active_resources: int
    total_requests: int
    rate_limited_resources: int


class MemoryRateLimitStore(RateLimitStore):
    """
    In-memory implementation of RateLimitStore.

    Keeps one ascending deque of request timestamps per resource and counts
    the ones inside the trailing window.
    """

    def __init__(
        self,
        default_config: Optional[RateLimitConfig] = None,
        resource_configs: Optional[Mapping[str, RateLimitConfig]] = None,
        cleanup_interval_ms: int = 60_000,
    ) -> None:
        """
        Create a new MemoryRateLimitStore.

        Args:
            default_config: Budget for resources without an override. Default: 100 per minute
            resource_configs: Per-resource overrides
            cleanup_interval_ms: How often stale timestamps are swept. 0 disables it
        """
        self._configs = ResourceConfigRegistry(default_config, resource_configs)
        self._requests: Dict[str, Deque[int]] = {}
        self._sweeper = PeriodicSweeper(
            "MemoryRateLimitStore", cleanup_interval_ms, self._sweep
        )
        self._closed = False

    def _ensure_open(self, operation: str) -> None:
        if self._closed:
            raise StoreDestroyedError("MemoryRateLimitStore", operation)
        self._sweeper.ensure_started()

    def _window(self, resource: str, now: int) -> Deque[int]:
        """Timestamps for a resource with everything outside the window dropped."""
        window_ms = self._configs.get(resource).window_ms
        requests = self._requests.get(resource)
        if requests is None:
            return deque()
        cutoff = now - window_ms
        while requests and requests[0] <= cutoff:
            requests.popleft()
        return requests

    async def can_proceed(self, resource: str) -> bool:
        self._ensure_open("can_proceed")
        config = self._configs.get(resource)
        if config.limit <= 0:
            return False
        return len(self._window(resource, clock.now_ms())) < config.limit

    async def record(self, resource: str) -> None:
        self._ensure_open("record")
        now = clock.now_ms()
        self._window(resource, now)
        self._requests.setdefault(resource, deque()).append(now)

    async def get_status(self, resource: str) -> RateLimitStatus:
        self._ensure_open("get_status")
        config = self._configs.get(resource)
        now = clock.now_ms()
        requests = self._window(resource, now)
        reset_at = requests[0] + config.window_ms if requests else now + config.window_ms
        return RateLimitStatus(
            remaining=max(0, config.limit - len(requests)),
            reset_time=clock.to_datetime(reset_at),
            limit=config.limit,
        )

    async def reset(self, resource: str) -> None:
        self._ensure_open("reset")
        self._requests.pop(resource, None)

    async def get_wait_time(self, resource: str) -> int:
        self._ensure_open("get_wait_time")
        config = self._configs.get(resource)
        if config.limit <= 0:
            return config.window_ms
        now = clock.now_ms()
        requests = self._window(resource, now)
        if len(requests) < config.limit:
            return 0
        # The request whose expiry frees a slot
        blocking = requests[len(requests) - config.limit]
        return min(config.window_ms, max(1, blocking + config.window_ms - now))

    def get_resource_config(self, resource: str) -> RateLimitConfig:
        return self._configs.get(resource)

    def set_resource_config(self, resource: str, config: RateLimitConfig) -> None:
        self._configs.set(resource, config)

    async def _sweep(self) -> None:
        self.cleanup()

    def cleanup(self) -> None:
        """Drop timestamps outside their window and forget idle resources."""
        now = clock.now_ms()
        for resource in list(self._requests):
            if not self._window(resource, now):
                del self._requests[resource]

    def get_stats(self) -> MemoryRateLimitStats:
        now = clock.now_ms()
        counts = {r: len(self._window(r, now)) for r in list(self._requests)}
        return MemoryRateLimitStats(
            total_resources=len(counts),
            active_resources=sum(1 for c in counts.values() if c > 0),
            total_requests=sum(counts.values()),
            rate_limited_resources=sum(
                1 for r, c in counts.items() if c >= self._configs.get(r).limit
            ),
        )

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._sweeper.stop()
        self._requests.clear()


def create_memory_rate_limit_store(**kwargs: Any) -> MemoryRateLimitStore:
    """Create a new MemoryRateLimitStore instance"""
    return MemoryRateLimitStore(**kwargs)
