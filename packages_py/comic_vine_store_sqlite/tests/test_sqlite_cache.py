"""
Tests for SQLiteCacheStore.
"""
import pytest
from sqlalchemy import update

from comic_vine_stores import SerializationError, StoreDestroyedError
from comic_vine_store_sqlite import SQLiteCacheStore, cache_table


class TestSQLiteCacheStore:
    """Tests for the cache contract over SQLite."""

    @pytest.mark.asyncio
    async def test_set_then_get(self, cache_store, fake_clock) -> None:
        """Should return a stored value inside its TTL."""
        await cache_store.set("key", {"id": 1, "tags": ["a", None]}, 60)
        fake_clock.advance(59_999)
        assert await cache_store.get("key") == {"id": 1, "tags": ["a", None]}

    @pytest.mark.asyncio
    async def test_missing_key(self, cache_store) -> None:
        """Should return None for unknown keys."""
        assert await cache_store.get("missing") is None

    @pytest.mark.asyncio
    async def test_zero_ttl_expires_immediately(self, cache_store, fake_clock) -> None:
        """Should treat ttl_seconds <= 0 as already expired."""
        await cache_store.set("key", "value", 0)
        assert await cache_store.get("key") is None

    @pytest.mark.asyncio
    async def test_expired_row_is_removed_on_read(self, cache_store, fake_clock) -> None:
        """Should delete an expired row when it is read."""
        await cache_store.set("key", "value", 1)
        fake_clock.advance(1_000)
        assert await cache_store.get("key") is None
        assert (await cache_store.get_stats()).total_items == 0

    @pytest.mark.asyncio
    async def test_set_is_upsert(self, cache_store) -> None:
        """Should replace the row for an existing key."""
        await cache_store.set("key", "first", 60)
        await cache_store.set("key", "second", 60)
        assert await cache_store.get("key") == "second"
        assert (await cache_store.get_stats()).total_items == 1

    @pytest.mark.asyncio
    async def test_corrupt_payload_is_purged(self, cache_store, database) -> None:
        """Should treat an undecodable row as missing and delete it."""
        await cache_store.set("key", "value", 60)
        async with database.transaction() as conn:
            await conn.execute(update(cache_table).values(value="{broken"))

        assert await cache_store.get("key") is None
        assert (await cache_store.get_stats()).total_items == 0

    @pytest.mark.asyncio
    async def test_unserializable_value_raises(self, cache_store) -> None:
        """Should raise SerializationError for values JSON cannot encode."""
        with pytest.raises(SerializationError):
            await cache_store.set("key", object(), 60)

    @pytest.mark.asyncio
    async def test_delete_clear_cleanup(self, cache_store, fake_clock) -> None:
        """Should delete single rows, expired rows and everything."""
        await cache_store.set("a", 1, 60)
        await cache_store.set("b", 2, 1)
        await cache_store.set("c", 3, 60)

        await cache_store.delete("a")
        fake_clock.advance(1_000)
        assert (await cache_store.get_stats()).expired_items == 1
        assert await cache_store.cleanup() == 1
        assert await cache_store.get("c") == 3

        await cache_store.clear()
        assert (await cache_store.get_stats()).total_items == 0

    @pytest.mark.asyncio
    async def test_persists_across_instances(self, db_path) -> None:
        """Should keep entries in the file after the store is closed."""
        first = SQLiteCacheStore(db_path, cleanup_interval_ms=0)
        await first.set("key", {"id": 1}, 60)
        await first.close()

        second = SQLiteCacheStore(db_path, cleanup_interval_ms=0)
        assert await second.get("key") == {"id": 1}
        await second.close()

    @pytest.mark.asyncio
    async def test_closed_store_raises(self, database) -> None:
        """Should raise StoreDestroyedError after close without disposing a shared database."""
        store = SQLiteCacheStore(database=database, cleanup_interval_ms=0)
        await store.close()
        await store.close()
        with pytest.raises(StoreDestroyedError):
            await store.get("key")

        other = SQLiteCacheStore(database=database, cleanup_interval_ms=0)
        await other.set("key", 1, 60)
        assert await other.get("key") == 1
        await other.close()
