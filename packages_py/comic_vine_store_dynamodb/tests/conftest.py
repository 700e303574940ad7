"""
Pytest configuration and fixtures for comic_vine_store_dynamodb tests.

Stores run against the in-memory FakeTable from
``comic_vine_store_dynamodb.testing``.
"""
from typing import Any, Dict

import pytest

from comic_vine_stores import RateLimitConfig, clock
from comic_vine_store_dynamodb import (
    DynamoDBAdaptiveRateLimitStore,
    DynamoDBCacheStore,
    DynamoDBDedupeStore,
    DynamoDBRateLimitStore,
)
from comic_vine_store_dynamodb.testing import FakeCloudWatchClient, FakeTable, client_error

START_MS = 1_700_000_000_000

STORE_CONFIG = {
    "table_name": "test-table",
    "max_retries": 2,
    "retry_delay_ms": 0,
    "cleanup_interval_ms": 0,
}


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
def table() -> FakeTable:
    return FakeTable()


@pytest.fixture
def cloudwatch_client() -> FakeCloudWatchClient:
    return FakeCloudWatchClient()


@pytest.fixture
async def cache_store(table):
    store = DynamoDBCacheStore(config=STORE_CONFIG, table=table)
    yield store
    await store.close()


@pytest.fixture
async def dedupe_store(table):
    store = DynamoDBDedupeStore(
        config=STORE_CONFIG, table=table, job_timeout_seconds=5, max_wait_ms=2_000, poll_interval_ms=10
    )
    yield store
    await store.close()


@pytest.fixture
async def rate_limit_store(table):
    store = DynamoDBRateLimitStore(
        config=STORE_CONFIG, table=table, default_config=RateLimitConfig(limit=3, window_ms=1_000)
    )
    yield store
    await store.close()


@pytest.fixture
async def adaptive_store(table):
    store = DynamoDBAdaptiveRateLimitStore(
        config=STORE_CONFIG, table=table, default_config=RateLimitConfig(limit=20, window_ms=60_000)
    )
    yield store
    await store.close()


@pytest.fixture
def store_config() -> Dict[str, Any]:
    """Fast settings: no sweep, no backoff delay."""
    return dict(STORE_CONFIG)


@pytest.fixture
def make_client_error():
    """Factory for botocore ClientError instances."""
    return client_error
