"""
Tests for MemoryRateLimitStore.

Coverage includes:
- Sliding window admission
- Wait time boundaries
- Per-resource configuration and reset isolation
"""
import pytest

from comic_vine_stores import RateLimitConfig, StoreDestroyedError, clock
from comic_vine_store_memory import MemoryRateLimitStore


class TestMemoryRateLimitAdmission:
    """Tests for can_proceed, record and get_wait_time."""

    @pytest.mark.asyncio
    async def test_admits_up_to_limit(self, rate_limit_store, fake_clock) -> None:
        """Should refuse once the limit is reached inside the window."""
        for _ in range(3):
            assert await rate_limit_store.can_proceed("issues") is True
            assert await rate_limit_store.get_wait_time("issues") == 0
            await rate_limit_store.record("issues")
            fake_clock.advance(100)

        assert await rate_limit_store.can_proceed("issues") is False
        wait = await rate_limit_store.get_wait_time("issues")
        # Oldest request at +0ms, now at +300ms, window 1000ms
        assert wait == 700

    @pytest.mark.asyncio
    async def test_window_slides(self, rate_limit_store, fake_clock) -> None:
        """Should admit again once the oldest request leaves the window."""
        for _ in range(3):
            await rate_limit_store.record("issues")
            fake_clock.advance(100)

        fake_clock.advance(699)
        assert await rate_limit_store.can_proceed("issues") is False
        assert await rate_limit_store.get_wait_time("issues") == 1

        fake_clock.advance(1)
        assert await rate_limit_store.can_proceed("issues") is True
        assert await rate_limit_store.get_wait_time("issues") == 0

    @pytest.mark.asyncio
    async def test_record_is_unconditional(self, rate_limit_store) -> None:
        """Should keep recording past the limit."""
        for _ in range(5):
            await rate_limit_store.record("issues")
        status = await rate_limit_store.get_status("issues")
        assert status.remaining == 0
        assert rate_limit_store.get_stats().total_requests == 5

    @pytest.mark.asyncio
    async def test_zero_limit_blocks(self, rate_limit_store) -> None:
        """Should never admit a zero-limit resource and report the full window."""
        rate_limit_store.set_resource_config("blocked", RateLimitConfig(limit=0, window_ms=5_000))
        assert await rate_limit_store.can_proceed("blocked") is False
        assert await rate_limit_store.get_wait_time("blocked") == 5_000


class TestMemoryRateLimitStatus:
    """Tests for get_status, reset and configuration."""

    @pytest.mark.asyncio
    async def test_status_reports_remaining_and_reset(self, rate_limit_store, fake_clock) -> None:
        """Should report remaining quota and when the oldest request expires."""
        await rate_limit_store.record("issues")
        fake_clock.advance(250)

        status = await rate_limit_store.get_status("issues")
        assert status.remaining == 2
        assert status.limit == 3
        assert status.reset_time == clock.to_datetime(fake_clock.now - 250 + 1_000)

    @pytest.mark.asyncio
    async def test_reset_only_affects_target(self, rate_limit_store) -> None:
        """Should clear one resource without touching others."""
        for _ in range(3):
            await rate_limit_store.record("issues")
            await rate_limit_store.record("volumes")

        await rate_limit_store.reset("issues")
        assert await rate_limit_store.can_proceed("issues") is True
        assert await rate_limit_store.can_proceed("volumes") is False

    @pytest.mark.asyncio
    async def test_resource_overrides(self) -> None:
        """Should apply per-resource overrides over the default."""
        store = MemoryRateLimitStore(
            default_config=RateLimitConfig(limit=1, window_ms=1_000),
            resource_configs={"issues": RateLimitConfig(limit=2, window_ms=1_000)},
            cleanup_interval_ms=0,
        )
        await store.record("issues")
        await store.record("volumes")

        assert await store.can_proceed("issues") is True
        assert await store.can_proceed("volumes") is False
        assert store.get_resource_config("issues").limit == 2
        await store.close()

    @pytest.mark.asyncio
    async def test_cleanup_forgets_idle_resources(self, rate_limit_store, fake_clock) -> None:
        """Should drop resources whose requests all left the window."""
        await rate_limit_store.record("issues")
        fake_clock.advance(1_000)
        rate_limit_store.cleanup()
        assert rate_limit_store.get_stats().total_resources == 0

    @pytest.mark.asyncio
    async def test_closed_store_raises(self, rate_limit_store) -> None:
        """Should raise StoreDestroyedError after close."""
        await rate_limit_store.close()
        with pytest.raises(StoreDestroyedError):
            await rate_limit_store.can_proceed("issues")
