"""
In-memory cache store with TTL and LRU eviction.
Suitable for single-process applications.
"""
import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, List, Optional

from comic_vine_stores import (
    CacheStore,
    PeriodicSweeper,
    StoreDestroyedError,
    clock,
    estimate_size,
)

logger = logging.getLogger(__name__)


@dataclass
class CacheItem:
    """Internal storage entry"""

    value: Any
    expires_at: int
    created_at: int
    last_accessed: int
    size: int


@dataclass
class MemoryCacheStats:
    """Snapshot of the cache contents."""

    total_items: int
    expired_items: int
    memory_usage_bytes: int
    max_items: int
    max_memory_bytes: int
    memory_utilization: float
    item_utilization: float


@dataclass
class LRUItem:
    key: str
    last_accessed: int
    size: int


class MemoryCacheStore(CacheStore):
    """
    In-memory implementation of CacheStore.

    Entries live in an OrderedDict kept in access order, so the first entry is
    always the least recently used one. Inserting past ``max_items`` or
    ``max_memory_bytes`` evicts from the front until ``eviction_ratio`` of the
    capacity is free again.
    """

    def __init__(
        self,
        cleanup_interval_ms: int = 60_000,
        max_items: int = 1000,
        max_memory_bytes: int = 50 * 1024 * 1024,
        eviction_ratio: float = 0.1,
    ) -> None:
        """
        Create a new MemoryCacheStore.

        Args:
            cleanup_interval_ms: How often expired entries are swept. 0 disables it
            max_items: Maximum number of entries
            max_memory_bytes: Approximate upper bound for stored payload bytes
            eviction_ratio: Share of capacity freed when a bound is crossed
        """
        if max_items <= 0 or max_memory_bytes <= 0:
            raise ValueError("max_items and max_memory_bytes must be positive")
        if not 0 <= eviction_ratio < 1:
            raise ValueError("eviction_ratio must be in [0, 1)")

        self._cache: "OrderedDict[str, CacheItem]" = OrderedDict()
        self._max_items = max_items
        self._max_memory_bytes = max_memory_bytes
        self._eviction_ratio = eviction_ratio
        self._memory_usage = 0
        self._sweeper = PeriodicSweeper(
            "MemoryCacheStore", cleanup_interval_ms, self._sweep
        )
        self._closed = False

    def _ensure_open(self, operation: str) -> None:
        if self._closed:
            raise StoreDestroyedError("MemoryCacheStore", operation)
        self._sweeper.ensure_started()

    async def _sweep(self) -> None:
        self.cleanup()

    def cleanup(self) -> int:
        """Remove expired entries. Returns how many were removed."""
        now = clock.now_ms()
        expired = [key for key, item in self._cache.items() if item.expires_at <= now]
        for key in expired:
            self._remove(key)
        if expired:
            logger.debug(f"MemoryCacheStore: removed {len(expired)} expired entries")
        return len(expired)

    def _remove(self, key: str) -> None:
        item = self._cache.pop(key, None)
        if item is not None:
            self._memory_usage -= item.size

    async def get(self, key: str) -> Optional[Any]:
        """Get a cached value, refreshing its recency."""
        self._ensure_open("get")
        item = self._cache.get(key)
        if item is None:
            return None

        now = clock.now_ms()
        if item.expires_at <= now:
            self._remove(key)
            return None

        item.last_accessed = now
        self._cache.move_to_end(key)
        return item.value

    async def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        """Store a value. ``ttl_seconds <= 0`` makes it expire immediately."""
        self._ensure_open("set")
        now = clock.now_ms()
        self._remove(key)

        size = estimate_size(value) + len(key.encode("utf-8"))
        item = CacheItem(
            value=value,
            expires_at=now + int(max(ttl_seconds, 0) * 1000),
            created_at=now,
            last_accessed=now,
            size=size,
        )
        self._cache[key] = item
        self._memory_usage += size
        self._enforce_limits()

    def _enforce_limits(self) -> None:
        if len(self._cache) > self._max_items:
            headroom = int(self._max_items * self._eviction_ratio)
            self._evict_lru(len(self._cache) - self._max_items + headroom)

        if self._memory_usage > self._max_memory_bytes:
            target = self._max_memory_bytes * (1 - self._eviction_ratio)
            evicted = 0
            # Keep the newest entry even when it alone exceeds the bound
            while self._memory_usage > target and len(self._cache) > 1:
                self._remove(next(iter(self._cache)))
                evicted += 1
            if evicted:
                logger.debug(f"MemoryCacheStore: evicted {evicted} entries over memory bound")

    def _evict_lru(self, count: int) -> None:
        count = min(count, len(self._cache))
        for _ in range(count):
            self._remove(next(iter(self._cache)))
        if count:
            logger.debug(f"MemoryCacheStore: evicted {count} least recently used entries")

    async def delete(self, key: str) -> None:
        """Remove an entry if present."""
        self._ensure_open("delete")
        self._remove(key)

    async def clear(self) -> None:
        """Remove every entry."""
        self._ensure_open("clear")
        self._cache.clear()
        self._memory_usage = 0

    def get_stats(self) -> MemoryCacheStats:
        """Counts and utilization, including not yet swept expired entries."""
        now = clock.now_ms()
        expired = sum(1 for item in self._cache.values() if item.expires_at <= now)
        return MemoryCacheStats(
            total_items=len(self._cache),
            expired_items=expired,
            memory_usage_bytes=self._memory_usage,
            max_items=self._max_items,
            max_memory_bytes=self._max_memory_bytes,
            memory_utilization=self._memory_usage / self._max_memory_bytes,
            item_utilization=len(self._cache) / self._max_items,
        )

    def get_lru_items(self, limit: int = 10) -> List[LRUItem]:
        """The least recently used entries, oldest first."""
        items = []
        for key, item in self._cache.items():
            if len(items) >= limit:
                break
            items.append(LRUItem(key=key, last_accessed=item.last_accessed, size=item.size))
        return items

    async def close(self) -> None:
        """Close the store and release resources."""
        if self._closed:
            return
        self._closed = True
        await self._sweeper.stop()
        self._cache.clear()
        self._memory_usage = 0


def create_memory_cache_store(**kwargs: Any) -> MemoryCacheStore:
    """Create a new MemoryCacheStore instance"""
    return MemoryCacheStore(**kwargs)
