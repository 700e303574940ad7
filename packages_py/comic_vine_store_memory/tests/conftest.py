"""Pytest configuration and fixtures for comic_vine_store_memory tests."""
from typing import AsyncGenerator

import pytest

from comic_vine_stores import RateLimitConfig, clock
from comic_vine_store_memory import (
    MemoryAdaptiveRateLimitStore,
    MemoryCacheStore,
    MemoryDedupeStore,
    MemoryRateLimitStore,
)

START_MS = 1_700_000_000_000


class FakeClock:
    """Replacement for clock.now_ms that only moves when told to."""

    def __init__(self, start: int = START_MS) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def fake_clock(monkeypatch) -> FakeClock:
    """Freeze store time at START_MS."""
    fake = FakeClock()
    monkeypatch.setattr(clock, "now_ms", fake)
    return fake


@pytest.fixture
async def cache_store() -> AsyncGenerator[MemoryCacheStore, None]:
    store = MemoryCacheStore(cleanup_interval_ms=0)
    yield store
    await store.close()


@pytest.fixture
async def dedupe_store() -> AsyncGenerator[MemoryDedupeStore, None]:
    store = MemoryDedupeStore(job_timeout_ms=5_000, cleanup_interval_ms=0)
    yield store
    await store.close()


@pytest.fixture
async def rate_limit_store() -> AsyncGenerator[MemoryRateLimitStore, None]:
    store = MemoryRateLimitStore(
        default_config=RateLimitConfig(limit=3, window_ms=1_000),
        cleanup_interval_ms=0,
    )
    yield store
    await store.close()


@pytest.fixture
async def adaptive_store() -> AsyncGenerator[MemoryAdaptiveRateLimitStore, None]:
    store = MemoryAdaptiveRateLimitStore(
        default_config=RateLimitConfig(limit=20, window_ms=60_000),
        cleanup_interval_ms=0,
    )
    yield store
    await store.close()
