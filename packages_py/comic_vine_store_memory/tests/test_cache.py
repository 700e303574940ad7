"""
Tests for MemoryCacheStore.

Coverage includes:
- TTL semantics, including immediate expiry
- LRU ordering and eviction by item count and by memory
- Statistics and lifecycle
"""
import pytest

from comic_vine_stores import StoreDestroyedError
from comic_vine_store_memory import MemoryCacheStore, create_memory_cache_store


class TestMemoryCacheStoreTTL:
    """Tests for get/set TTL handling."""

    @pytest.mark.asyncio
    async def test_get_returns_none_for_missing_key(self, cache_store) -> None:
        """Should return None for a key that was never set."""
        assert await cache_store.get("missing") is None

    @pytest.mark.asyncio
    async def test_set_then_get(self, cache_store, fake_clock) -> None:
        """Should return the stored value inside its TTL."""
        await cache_store.set("key", {"id": 1}, 60)
        fake_clock.advance(59_999)
        assert await cache_store.get("key") == {"id": 1}

    @pytest.mark.asyncio
    async def test_zero_ttl_expires_immediately(self, cache_store, fake_clock) -> None:
        """Should treat ttl_seconds <= 0 as already expired."""
        await cache_store.set("zero", "value", 0)
        await cache_store.set("negative", "value", -5)
        assert await cache_store.get("zero") is None
        assert await cache_store.get("negative") is None

    @pytest.mark.asyncio
    async def test_expired_entry_is_removed_on_read(self, cache_store, fake_clock) -> None:
        """Should drop an expired entry when it is read."""
        await cache_store.set("key", "value", 1)
        fake_clock.advance(1_000)

        assert await cache_store.get("key") is None
        assert cache_store.get_stats().total_items == 0

    @pytest.mark.asyncio
    async def test_overwrite_replaces_value(self, cache_store) -> None:
        """Should overwrite an existing entry."""
        await cache_store.set("key", "first", 60)
        await cache_store.set("key", "second", 60)
        assert await cache_store.get("key") == "second"
        assert cache_store.get_stats().total_items == 1

    @pytest.mark.asyncio
    async def test_delete_and_clear(self, cache_store) -> None:
        """Should remove single entries and everything."""
        await cache_store.set("a", 1, 60)
        await cache_store.set("b", 2, 60)

        await cache_store.delete("a")
        await cache_store.delete("never-set")
        assert await cache_store.get("a") is None
        assert await cache_store.get("b") == 2

        await cache_store.clear()
        stats = cache_store.get_stats()
        assert stats.total_items == 0
        assert stats.memory_usage_bytes == 0

    @pytest.mark.asyncio
    async def test_cleanup_removes_expired(self, cache_store, fake_clock) -> None:
        """Should sweep expired entries and report how many were removed."""
        await cache_store.set("short", 1, 1)
        await cache_store.set("long", 2, 60)
        fake_clock.advance(2_000)

        assert cache_store.get_stats().expired_items == 1
        assert cache_store.cleanup() == 1
        assert cache_store.get_stats().total_items == 1


class TestMemoryCacheStoreEviction:
    """Tests for LRU eviction."""

    @pytest.mark.asyncio
    async def test_evicts_least_recently_used_past_max_items(self, fake_clock) -> None:
        """Should evict the LRU entry plus the eviction headroom."""
        store = MemoryCacheStore(cleanup_interval_ms=0, max_items=10, eviction_ratio=0.2)
        for i in range(10):
            await store.set(f"k{i}", i, 60)
            fake_clock.advance(1)

        # Touch k0 so k1 becomes the least recently used
        assert await store.get("k0") == 0
        await store.set("k10", 10, 60)

        # 1 over the bound + int(10 * 0.2) headroom
        assert store.get_stats().total_items == 8
        assert await store.get("k0") == 0
        assert await store.get("k1") is None
        assert await store.get("k2") is None
        assert await store.get("k3") is None
        assert await store.get("k4") == 4
        await store.close()

    @pytest.mark.asyncio
    async def test_evicts_past_memory_bound(self) -> None:
        """Should evict until usage is back under the reduced memory target."""
        store = MemoryCacheStore(cleanup_interval_ms=0, max_memory_bytes=1_000, eviction_ratio=0.1)
        for i in range(5):
            await store.set(f"k{i}", "x" * 200, 60)

        stats = store.get_stats()
        assert stats.memory_usage_bytes <= 900
        assert await store.get("k4") == "x" * 200
        assert await store.get("k0") is None
        await store.close()

    @pytest.mark.asyncio
    async def test_keeps_single_oversized_entry(self) -> None:
        """Should keep the newest entry even if it alone exceeds the bound."""
        store = MemoryCacheStore(cleanup_interval_ms=0, max_memory_bytes=100)
        await store.set("big", "x" * 500, 60)
        assert await store.get("big") == "x" * 500
        await store.close()

    @pytest.mark.asyncio
    async def test_get_lru_items_oldest_first(self, cache_store, fake_clock) -> None:
        """Should list entries from least to most recently used."""
        await cache_store.set("a", 1, 60)
        fake_clock.advance(1)
        await cache_store.set("b", 2, 60)
        fake_clock.advance(1)
        await cache_store.get("a")

        items = cache_store.get_lru_items()
        assert [item.key for item in items] == ["b", "a"]
        assert items[1].last_accessed == fake_clock.now
        assert len(cache_store.get_lru_items(limit=1)) == 1

    def test_rejects_invalid_bounds(self) -> None:
        """Should validate constructor bounds."""
        with pytest.raises(ValueError):
            MemoryCacheStore(max_items=0)
        with pytest.raises(ValueError):
            MemoryCacheStore(eviction_ratio=1.0)


class TestMemoryCacheStoreLifecycle:
    """Tests for close behavior."""

    @pytest.mark.asyncio
    async def test_operations_after_close_raise(self) -> None:
        """Should raise StoreDestroyedError after close."""
        store = create_memory_cache_store(cleanup_interval_ms=0)
        await store.close()
        await store.close()

        with pytest.raises(StoreDestroyedError):
            await store.get("key")
        with pytest.raises(StoreDestroyedError):
            await store.set("key", 1, 60)

    @pytest.mark.asyncio
    async def test_context_manager_closes(self) -> None:
        """Should close when leaving an async with block."""
        async with MemoryCacheStore(cleanup_interval_ms=0) as store:
            await store.set("key", 1, 60)
        with pytest.raises(StoreDestroyedError):
            await store.get("key")

    @pytest.mark.asyncio
    async def test_stats_utilization(self) -> None:
        """Should report utilization against the configured bounds."""
        store = MemoryCacheStore(cleanup_interval_ms=0, max_items=4)
        await store.set("a", 1, 60)
        stats = store.get_stats()
        assert stats.item_utilization == 0.25
        assert stats.max_items == 4
        await store.close()
