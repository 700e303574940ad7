"""Pytest configuration and fixtures for comic_vine_store_sqlite tests."""
from typing import AsyncGenerator

import pytest

from comic_vine_stores import RateLimitConfig, clock
from comic_vine_store_sqlite import (
    SQLiteAdaptiveRateLimitStore,
    SQLiteCacheStore,
    SQLiteDatabase,
    SQLiteDedupeStore,
    SQLiteRateLimitStore,
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
async def database() -> AsyncGenerator[SQLiteDatabase, None]:
    """Shared in-memory database."""
    db = SQLiteDatabase()
    yield db
    await db.dispose()


@pytest.fixture
def db_path(tmp_path) -> str:
    return str(tmp_path / "comic-vine.db")


@pytest.fixture
async def cache_store(database) -> AsyncGenerator[SQLiteCacheStore, None]:
    store = SQLiteCacheStore(database=database, cleanup_interval_ms=0)
    yield store
    await store.close()


@pytest.fixture
async def dedupe_store(database) -> AsyncGenerator[SQLiteDedupeStore, None]:
    store = SQLiteDedupeStore(
        database=database, cleanup_interval_ms=0, job_timeout_ms=5_000, poll_interval_ms=10
    )
    yield store
    await store.close()


@pytest.fixture
async def rate_limit_store(database) -> AsyncGenerator[SQLiteRateLimitStore, None]:
    store = SQLiteRateLimitStore(
        database=database,
        cleanup_interval_ms=0,
        default_config=RateLimitConfig(limit=3, window_ms=1_000),
    )
    yield store
    await store.close()


@pytest.fixture
async def adaptive_store(database) -> AsyncGenerator[SQLiteAdaptiveRateLimitStore, None]:
    store = SQLiteAdaptiveRateLimitStore(
        database=database,
        cleanup_interval_ms=0,
        default_config=RateLimitConfig(limit=20, window_ms=60_000),
    )
    yield store
    await store.close()
