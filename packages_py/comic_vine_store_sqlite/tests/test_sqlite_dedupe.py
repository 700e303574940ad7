"""
Tests for SQLiteDedupeStore.

Coverage includes:
- Atomic registration, including across store handles on one file
- First writer wins
- Polling waiters, timeouts and close
"""
import asyncio

import pytest

from comic_vine_stores import DedupeTimeoutError, StoreDestroyedError
from comic_vine_store_sqlite import SQLiteDedupeStore


class TestSQLiteDedupeRegister:
    """Tests for register and is_in_progress."""

    @pytest.mark.asyncio
    async def test_concurrent_registers_share_job(self, dedupe_store) -> None:
        """Should hand every concurrent caller the same job id."""
        ids = await asyncio.gather(*(dedupe_store.register("key") for _ in range(5)))
        assert len(set(ids)) == 1
        assert await dedupe_store.is_in_progress("key") is True

    @pytest.mark.asyncio
    async def test_try_register_reports_ownership(self, dedupe_store) -> None:
        """Should mark exactly one concurrent registration as the owner."""
        results = await asyncio.gather(*(dedupe_store.try_register("key") for _ in range(5)))
        assert len({r.job_id for r in results}) == 1
        assert [r.created for r in results].count(True) == 1

    @pytest.mark.asyncio
    async def test_new_job_after_resolution(self, dedupe_store) -> None:
        """Should replace a resolved job on the next register."""
        first = await dedupe_store.register("key")
        await dedupe_store.fail("key", "boom")
        assert await dedupe_store.register("key") != first

    @pytest.mark.asyncio
    async def test_abandoned_job_is_replaced(self, dedupe_store, fake_clock) -> None:
        """Should let a new owner take over an abandoned job."""
        first = await dedupe_store.register("key")
        fake_clock.advance(5_000)

        assert await dedupe_store.is_in_progress("key") is False
        assert await dedupe_store.register("key") != first

    @pytest.mark.asyncio
    async def test_visible_across_handles(self, db_path) -> None:
        """Should share jobs between stores opened on the same file."""
        first = SQLiteDedupeStore(db_path, cleanup_interval_ms=0, poll_interval_ms=10)
        second = SQLiteDedupeStore(db_path, cleanup_interval_ms=0, poll_interval_ms=10)
        try:
            job_id = await first.register("key")
            assert await second.is_in_progress("key") is True
            assert await second.register("key") == job_id
            assert (await second.try_register("key")).created is False

            waiter = asyncio.create_task(second.wait_for("key"))
            await asyncio.sleep(0.05)
            await first.complete("key", {"id": 7})
            assert await asyncio.wait_for(waiter, 2) == {"id": 7}
        finally:
            await first.close()
            await second.close()


class TestSQLiteDedupeResolution:
    """Tests for wait_for, complete and fail."""

    @pytest.mark.asyncio
    async def test_wait_for_missing(self, dedupe_store) -> None:
        """Should return None immediately for unknown fingerprints."""
        assert await asyncio.wait_for(dedupe_store.wait_for("missing"), 0.5) is None

    @pytest.mark.asyncio
    async def test_waiter_woken_by_complete(self, dedupe_store) -> None:
        """Should deliver the result to an in-process waiter."""
        await dedupe_store.register("key")
        waiter = asyncio.create_task(dedupe_store.wait_for("key"))
        await asyncio.sleep(0.02)

        await dedupe_store.complete("key", [1, 2, 3])
        assert await asyncio.wait_for(waiter, 2) == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_first_writer_wins(self, dedupe_store) -> None:
        """Should ignore resolutions after the first one."""
        await dedupe_store.register("key")
        await dedupe_store.complete("key", "v1")
        await dedupe_store.complete("key", "v2")
        await dedupe_store.fail("key", "late")

        assert await dedupe_store.wait_for("key") == "v1"
        stats = await dedupe_store.get_stats()
        assert stats.completed_jobs == 1
        assert stats.failed_jobs == 0

    @pytest.mark.asyncio
    async def test_failed_job_resolves_to_none(self, dedupe_store) -> None:
        """Should return None to waiters of a failed job."""
        await dedupe_store.register("key")
        waiter = asyncio.create_task(dedupe_store.wait_for("key"))
        await asyncio.sleep(0.02)

        await dedupe_store.fail("key", RuntimeError("upstream"))
        assert await asyncio.wait_for(waiter, 2) is None

    @pytest.mark.asyncio
    async def test_resolving_unknown_is_noop(self, dedupe_store) -> None:
        """Should not create rows when resolving unknown fingerprints."""
        await dedupe_store.complete("missing", 1)
        await dedupe_store.fail("missing", "error")
        assert (await dedupe_store.get_stats()).total_jobs == 0

    @pytest.mark.asyncio
    async def test_wait_times_out(self, database) -> None:
        """Should raise DedupeTimeoutError once the job timeout passes."""
        store = SQLiteDedupeStore(
            database=database, cleanup_interval_ms=0, job_timeout_ms=100, poll_interval_ms=10
        )
        await store.register("key")
        with pytest.raises(DedupeTimeoutError):
            await asyncio.wait_for(store.wait_for("key"), 2)
        await store.close()

    @pytest.mark.asyncio
    async def test_cleanup_removes_old_jobs(self, dedupe_store, fake_clock) -> None:
        """Should delete jobs older than the timeout."""
        await dedupe_store.register("old")
        fake_clock.advance(5_000)
        await dedupe_store.register("new")

        assert await dedupe_store.cleanup() == 1
        assert (await dedupe_store.get_stats()).total_jobs == 1

    @pytest.mark.asyncio
    async def test_close_releases_waiters(self, database) -> None:
        """Should release pending waiters with StoreDestroyedError on close."""
        store = SQLiteDedupeStore(database=database, cleanup_interval_ms=0, poll_interval_ms=1_000)
        await store.register("key")
        waiter = asyncio.create_task(store.wait_for("key"))
        await asyncio.sleep(0.02)

        await store.close()
        with pytest.raises(StoreDestroyedError):
            await asyncio.wait_for(waiter, 2)
