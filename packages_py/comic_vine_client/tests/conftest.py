"""Pytest configuration and fixtures for comic_vine_client tests."""
import asyncio
from typing import Any, AsyncGenerator, Callable, Dict, List, Optional
from urllib.parse import parse_qs, urlsplit

import pytest

from comic_vine_stores import RateLimitConfig
from comic_vine_store_dynamodb import DynamoDBCacheStore, DynamoDBDedupeStore, DynamoDBRateLimitStore
from comic_vine_store_dynamodb.testing import FakeTable
from comic_vine_store_memory import MemoryCacheStore, MemoryDedupeStore, MemoryRateLimitStore
from comic_vine_store_sqlite import (
    SQLiteCacheStore,
    SQLiteDatabase,
    SQLiteDedupeStore,
    SQLiteRateLimitStore,
)


class RecordingTransport:
    """Transport double that records URLs and answers from a handler."""

    def __init__(
        self,
        handler: Optional[Callable[[str], Any]] = None,
        delay: float = 0.0,
    ) -> None:
        self.urls: List[str] = []
        self.handler = handler or (lambda url: {"status_code": 1, "results": {"url": url}})
        self.delay = delay
        self.closed = False

    async def get(self, url: str) -> Any:
        self.urls.append(url)
        if self.delay:
            await asyncio.sleep(self.delay)
        result = self.handler(url)
        if isinstance(result, BaseException):
            raise result
        return result

    async def close(self) -> None:
        self.closed = True


def query_params(url: str) -> Dict[str, str]:
    return {k: v[0] for k, v in parse_qs(urlsplit(url).query).items()}


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def make_transport():
    """Factory for RecordingTransport with a custom handler or delay."""
    return RecordingTransport


@pytest.fixture
def params():
    """Parse a URL's query string into a flat dict."""
    return query_params


DYNAMODB_CONFIG = {"table_name": "client-tests", "retry_delay_ms": 0, "cleanup_interval_ms": 0}

BACKENDS = ["memory", "sqlite", "dynamodb"]


class StoreFactory:
    """Builds stores of one backend and closes them all at teardown."""

    def __init__(self, backend: str) -> None:
        self.backend = backend
        self._database: Optional[SQLiteDatabase] = None
        self._table: Optional[FakeTable] = None
        self._stores: List[Any] = []

    @property
    def database(self) -> SQLiteDatabase:
        if self._database is None:
            self._database = SQLiteDatabase()
        return self._database

    @property
    def table(self) -> FakeTable:
        if self._table is None:
            self._table = FakeTable(name="client-tests")
        return self._table

    def _track(self, store: Any) -> Any:
        self._stores.append(store)
        return store

    def cache(self) -> Any:
        if self.backend == "sqlite":
            return self._track(SQLiteCacheStore(database=self.database, cleanup_interval_ms=0))
        if self.backend == "dynamodb":
            return self._track(DynamoDBCacheStore(config=DYNAMODB_CONFIG, table=self.table))
        return self._track(MemoryCacheStore(cleanup_interval_ms=0))

    def dedupe(self) -> Any:
        if self.backend == "sqlite":
            return self._track(
                SQLiteDedupeStore(database=self.database, cleanup_interval_ms=0, poll_interval_ms=10)
            )
        if self.backend == "dynamodb":
            return self._track(
                DynamoDBDedupeStore(config=DYNAMODB_CONFIG, table=self.table, poll_interval_ms=10)
            )
        return self._track(MemoryDedupeStore(cleanup_interval_ms=0))

    def rate_limit(self, config: Optional[RateLimitConfig] = None) -> Any:
        if self.backend == "sqlite":
            return self._track(
                SQLiteRateLimitStore(
                    database=self.database, cleanup_interval_ms=0, default_config=config
                )
            )
        if self.backend == "dynamodb":
            return self._track(
                DynamoDBRateLimitStore(
                    config=DYNAMODB_CONFIG, table=self.table, default_config=config
                )
            )
        return self._track(MemoryRateLimitStore(default_config=config, cleanup_interval_ms=0))

    async def close(self) -> None:
        for store in self._stores:
            await store.close()
        if self._database is not None:
            await self._database.dispose()


@pytest.fixture(params=BACKENDS)
async def store_factory(request) -> AsyncGenerator[StoreFactory, None]:
    """Store builder for each backend in turn."""
    factory = StoreFactory(request.param)
    yield factory
    await factory.close()


@pytest.fixture
def stores(store_factory) -> Dict[str, Any]:
    return {
        "cache": store_factory.cache(),
        "dedupe": store_factory.dedupe(),
        "rate_limit": store_factory.rate_limit(),
    }
