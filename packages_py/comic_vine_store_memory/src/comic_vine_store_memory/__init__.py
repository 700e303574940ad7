"""
In-memory store backends for the Comic Vine client.
Suitable for single-process applications and tests.
"""
from .cache import (
    MemoryCacheStore,
    MemoryCacheStats,
    LRUItem,
    create_memory_cache_store,
)
from .dedupe import MemoryDedupeStore, MemoryDedupeStats, create_memory_dedupe_store
from .rate_limit import (
    MemoryRateLimitStore,
    MemoryRateLimitStats,
    create_memory_rate_limit_store,
)
from .adaptive_rate_limit import (
    MemoryAdaptiveRateLimitStats,
    MemoryAdaptiveRateLimitStore,
    create_memory_adaptive_rate_limit_store,
)


__all__ = [
    # Cache
    "MemoryCacheStore",
    "MemoryCacheStats",
    "LRUItem",
    "create_memory_cache_store",
    # Dedupe
    "MemoryDedupeStore",
    "MemoryDedupeStats",
    "create_memory_dedupe_store",
    # Rate limiting
    "MemoryRateLimitStore",
    "MemoryRateLimitStats",
    "create_memory_rate_limit_store",
    "MemoryAdaptiveRateLimitStats",
    "MemoryAdaptiveRateLimitStore",
    "create_memory_adaptive_rate_limit_store",
]

__version__ = "1.0.0"
