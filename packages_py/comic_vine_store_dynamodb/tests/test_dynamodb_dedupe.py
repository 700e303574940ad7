"""
Tests for DynamoDBDedupeStore.

Coverage includes:
- Conditional-put registration and takeover of resolved or expired jobs
- First writer wins on resolution
- Polling waiters and timeouts
"""
import asyncio

import pytest

from comic_vine_stores import DedupeTimeoutError, StoreDestroyedError
from comic_vine_store_dynamodb import DynamoDBDedupeStore, schema


class TestDynamoDBDedupeRegister:
    """Tests for register and is_in_progress."""

    @pytest.mark.asyncio
    async def test_concurrent_registers_share_job(self, dedupe_store, fake_clock) -> None:
        """Should let one conditional put win and hand its job id to everyone."""
        ids = await asyncio.gather(*(dedupe_store.register("key") for _ in range(5)))
        assert len(set(ids)) == 1
        assert await dedupe_store.is_in_progress("key") is True

    @pytest.mark.asyncio
    async def test_row_layout(self, dedupe_store, table, fake_clock) -> None:
        """Should store the job under a fixed sort key with its id in Data."""
        job_id = await dedupe_store.register("key")
        [row] = table.rows("DEDUPE#")

        assert row[schema.SK] == "JOB"
        assert row[schema.DATA]["jobId"] == job_id
        assert row[schema.DATA]["status"] == "pending"
        assert row[schema.TTL] == fake_clock.now // 1000 + 5

    @pytest.mark.asyncio
    async def test_takes_over_resolved_job(self, dedupe_store, fake_clock) -> None:
        """Should register a new job once the previous one resolved."""
        first = await dedupe_store.register("key")
        await dedupe_store.complete("key", 1)
        assert await dedupe_store.register("key") != first

    @pytest.mark.asyncio
    async def test_takes_over_expired_job(self, dedupe_store, fake_clock) -> None:
        """Should register a new job once the pending one passed its TTL."""
        first = await dedupe_store.register("key")
        fake_clock.advance(5_000)

        assert await dedupe_store.is_in_progress("key") is False
        assert await dedupe_store.register("key") != first

    @pytest.mark.asyncio
    async def test_try_register_reports_ownership(self, dedupe_store, fake_clock) -> None:
        """Should mark only the registration that created the job as owner."""
        first, second = await asyncio.gather(
            dedupe_store.try_register("key"), dedupe_store.try_register("key")
        )
        assert first.job_id == second.job_id
        assert sorted([first.created, second.created]) == [False, True]

    @pytest.mark.asyncio
    async def test_job_lives_for_full_timeout_mid_second(self, dedupe_store, fake_clock) -> None:
        """Should keep a job registered mid-second pending for the whole timeout."""
        fake_clock.advance(900)
        await dedupe_store.register("key")

        fake_clock.advance(4_500)
        assert await dedupe_store.is_in_progress("key") is True

        fake_clock.advance(500)
        assert await dedupe_store.is_in_progress("key") is False

    @pytest.mark.asyncio
    async def test_shared_between_stores(self, table, store_config, fake_clock) -> None:
        """Should see jobs registered by another store on the same table."""
        first = DynamoDBDedupeStore(config=store_config, table=table)
        second = DynamoDBDedupeStore(config=store_config, table=table)
        try:
            job_id = await first.register("key")
            assert await second.register("key") == job_id
            assert await second.is_in_progress("key") is True
        finally:
            await first.close()
            await second.close()


class TestDynamoDBDedupeResolution:
    """Tests for wait_for, complete and fail."""

    @pytest.mark.asyncio
    async def test_wait_for_missing(self, dedupe_store, fake_clock) -> None:
        """Should return None for unknown fingerprints."""
        assert await dedupe_store.wait_for("missing") is None

    @pytest.mark.asyncio
    async def test_waiter_sees_completion(self, dedupe_store, fake_clock) -> None:
        """Should return the result once the row is completed."""
        await dedupe_store.register("key")
        waiter = asyncio.create_task(dedupe_store.wait_for("key"))
        await asyncio.sleep(0.02)

        await dedupe_store.complete("key", {"id": 3})
        assert await asyncio.wait_for(waiter, 2) == {"id": 3}

    @pytest.mark.asyncio
    async def test_failed_job(self, dedupe_store, fake_clock) -> None:
        """Should return None to waiters of a failed job."""
        await dedupe_store.register("key")
        await dedupe_store.fail("key", RuntimeError("upstream"))

        assert await dedupe_store.wait_for("key") is None
        assert await dedupe_store.is_in_progress("key") is False

    @pytest.mark.asyncio
    async def test_first_writer_wins(self, dedupe_store, table, fake_clock) -> None:
        """Should ignore resolutions after the first one."""
        await dedupe_store.register("key")
        await dedupe_store.complete("key", "v1")
        await dedupe_store.complete("key", "v2")
        await dedupe_store.fail("key", "late")

        assert await dedupe_store.wait_for("key") == "v1"
        [row] = table.rows("DEDUPE#")
        assert row[schema.DATA]["status"] == "completed"

    @pytest.mark.asyncio
    async def test_resolving_unknown_is_noop(self, dedupe_store, table, fake_clock) -> None:
        """Should not fail or create rows for unknown fingerprints."""
        await dedupe_store.complete("missing", 1)
        await dedupe_store.fail("missing", "error")
        assert table.rows("DEDUPE#") == []

    @pytest.mark.asyncio
    async def test_oversized_result_fails_job(self, dedupe_store, table, fake_clock) -> None:
        """Should fail the job when the result cannot fit in an item."""
        await dedupe_store.register("key")
        await dedupe_store.complete("key", "x" * (500 * 1024))

        [row] = table.rows("DEDUPE#")
        assert row[schema.DATA]["status"] == "failed"
        assert await dedupe_store.wait_for("key") is None

    @pytest.mark.asyncio
    async def test_wait_times_out(self, table, store_config) -> None:
        """Should raise DedupeTimeoutError after max_wait_ms."""
        store = DynamoDBDedupeStore(
            config=store_config, table=table, max_wait_ms=50, poll_interval_ms=10
        )
        await store.register("key")
        with pytest.raises(DedupeTimeoutError):
            await asyncio.wait_for(store.wait_for("key"), 2)
        await store.close()

    @pytest.mark.asyncio
    async def test_clear(self, dedupe_store, table, fake_clock) -> None:
        """Should delete every dedupe row."""
        await dedupe_store.register("a")
        await dedupe_store.register("b")
        await dedupe_store.clear()
        assert table.rows("DEDUPE#") == []

    @pytest.mark.asyncio
    async def test_close_stops_waiters(self, table, store_config) -> None:
        """Should end a polling waiter with StoreDestroyedError."""
        store = DynamoDBDedupeStore(config=store_config, table=table, poll_interval_ms=10)
        await store.register("key")
        waiter = asyncio.create_task(store.wait_for("key"))
        await asyncio.sleep(0.02)

        await store.close()
        with pytest.raises(StoreDestroyedError):
            await asyncio.wait_for(waiter, 2)
