"""
Store contracts, request fingerprinting and adaptive capacity for the Comic Vine client.
"""
from .types import (
    RequestPriority,
    DedupeJobStatus,
    ActivityTrend,
    RateLimitConfig,
    RateLimitStatus,
    AdaptiveStatus,
    AdaptiveRateLimitStatus,
    ActivityMetrics,
    DynamicCapacityResult,
    DedupeJob,
    DedupeRegistration,
    DedupeFailure,
    Store,
    CacheStore,
    DedupeStore,
    RateLimitStore,
    AdaptiveRateLimitStore,
)
from .errors import (
    StoreError,
    StoreDestroyedError,
    ItemSizeError,
    SerializationError,
    DedupeTimeoutError,
    ThrottlingError,
    CircuitBreakerOpenError,
    OperationTimeoutError,
)
from .config import (
    DEFAULT_RATE_LIMIT_CONFIG,
    DEFAULT_ADAPTIVE_RATE_LIMIT_CONFIG,
    AdaptiveConfig,
    AdaptiveConfigInput,
    merge_adaptive_config,
    ResourceConfigRegistry,
)
from .hasher import UNSET, sort_params, canonicalize, hash_request
from .codec import encode_value, decode_value, encoded_size, estimate_size
from .adaptive import (
    AdaptiveCapacityCalculator,
    CachedCapacity,
    CapacityPlanner,
    capacity_for,
    is_admitted,
    to_adaptive_status,
    remaining_for,
    adaptive_wait_time,
)
from .sweeper import PeriodicSweeper
from . import clock


__all__ = [
    # Types
    "RequestPriority",
    "DedupeJobStatus",
    "ActivityTrend",
    "RateLimitConfig",
    "RateLimitStatus",
    "AdaptiveStatus",
    "AdaptiveRateLimitStatus",
    "ActivityMetrics",
    "DynamicCapacityResult",
    "DedupeJob",
    "DedupeRegistration",
    "DedupeFailure",
    # Contracts
    "Store",
    "CacheStore",
    "DedupeStore",
    "RateLimitStore",
    "AdaptiveRateLimitStore",
    # Errors
    "StoreError",
    "StoreDestroyedError",
    "ItemSizeError",
    "SerializationError",
    "DedupeTimeoutError",
    "ThrottlingError",
    "CircuitBreakerOpenError",
    "OperationTimeoutError",
    # Config
    "DEFAULT_RATE_LIMIT_CONFIG",
    "DEFAULT_ADAPTIVE_RATE_LIMIT_CONFIG",
    "AdaptiveConfig",
    "AdaptiveConfigInput",
    "merge_adaptive_config",
    "ResourceConfigRegistry",
    # Hashing
    "UNSET",
    "sort_params",
    "canonicalize",
    "hash_request",
    # Codec
    "encode_value",
    "decode_value",
    "encoded_size",
    "estimate_size",
    # Adaptive
    "AdaptiveCapacityCalculator",
    "CachedCapacity",
    "CapacityPlanner",
    "capacity_for",
    "is_admitted",
    "to_adaptive_status",
    "remaining_for",
    "adaptive_wait_time",
    # Background work
    "PeriodicSweeper",
    "clock",
]

__version__ = "1.0.0"
