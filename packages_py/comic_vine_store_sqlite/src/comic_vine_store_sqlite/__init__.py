"""
SQLite store backends for the Comic Vine client.

Built on SQLAlchemy's async engine with the aiosqlite driver. Stores pointed
at the same file share state across processes.
"""
from .schema import metadata, cache_table, dedupe_jobs_table, rate_limits_table
from .database import MEMORY_PATH, SQLiteDatabase, create_database
from .cache import SQLiteCacheStore, SQLiteCacheStats, create_sqlite_cache_store
from .dedupe import SQLiteDedupeStore, SQLiteDedupeStats, create_sqlite_dedupe_store
from .rate_limit import SQLiteRateLimitStore, create_sqlite_rate_limit_store
from .adaptive_rate_limit import (
    SQLiteAdaptiveRateLimitStore,
    create_sqlite_adaptive_rate_limit_store,
)


__all__ = [
    # Schema
    "metadata",
    "cache_table",
    "dedupe_jobs_table",
    "rate_limits_table",
    # Database
    "MEMORY_PATH",
    "SQLiteDatabase",
    "create_database",
    # Stores
    "SQLiteCacheStore",
    "SQLiteCacheStats",
    "create_sqlite_cache_store",
    "SQLiteDedupeStore",
    "SQLiteDedupeStats",
    "create_sqlite_dedupe_store",
    "SQLiteRateLimitStore",
    "create_sqlite_rate_limit_store",
    "SQLiteAdaptiveRateLimitStore",
    "create_sqlite_adaptive_rate_limit_store",
]

__version__ = "1.0.0"
