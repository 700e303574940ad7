"""
Table definitions for the SQLite backend.
"""
from sqlalchemy import (
    BigInteger,
    Column,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
)

metadata = MetaData()

cache_table = Table(
    "cache",
    metadata,
    Column("hash", String, primary_key=True),
    Column("value", Text, nullable=False),
    Column("expires_at", BigInteger, nullable=False),
    Column("created_at", BigInteger, nullable=False),
    Index("idx_cache_expires_at", "expires_at"),
)

dedupe_jobs_table = Table(
    "dedupe_jobs",
    metadata,
    Column("hash", String, primary_key=True),
    Column("job_id", String, nullable=False),
    Column("status", String, nullable=False),
    Column("result", Text),
    Column("error", Text),
    Column("created_at", BigInteger, nullable=False),
    Column("updated_at", BigInteger, nullable=False),
    Index("idx_dedupe_jobs_status", "status"),
)

# Integer (not BigInteger) so SQLite aliases the key to rowid
rate_limits_table = Table(
    "rate_limits",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("resource", String, nullable=False),
    Column("timestamp", BigInteger, nullable=False),
    Column("priority", String, nullable=False, server_default="background"),
    Index("idx_rate_limits_resource", "resource"),
    Index("idx_rate_limits_timestamp", "timestamp"),
    Index("idx_rate_limits_resource_timestamp", "resource", "timestamp"),
)
