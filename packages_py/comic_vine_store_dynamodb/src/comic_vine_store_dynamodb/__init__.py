"""
DynamoDB store backends for the Comic Vine client.

All stores share one table (``PK``/``SK`` keys, ``TTL`` expiry and a ``GSI1``
index on expiration) and run every call through a ResilientExecutor that adds
retries, a circuit breaker, timeouts and metrics.
"""
from .config import (
    CircuitBreakerConfig,
    DynamoDBStoreConfig,
    DynamoDBStoreConfigInput,
    merge_store_config,
)
from .errors import (
    DynamoDBStoreError,
    is_conditional_check_failed,
    is_throttling_error,
    is_severe_error,
    is_retryable_error,
)
from .circuit_breaker import CircuitBreaker, CircuitBreakerStats, CircuitState
from .retry import RetryPolicy, RetryEvent, calculate_backoff_delay
from .monitoring import (
    StoreMonitor,
    OperationMetric,
    OperationSummary,
    current_correlation_id,
)
from .executor import ResilientExecutor
from .client import create_table, close_table
from .base import DynamoDBStoreBase
from .cache import DynamoDBCacheStore, DynamoDBCacheStats, create_dynamodb_cache_store
from .dedupe import DynamoDBDedupeStore, create_dynamodb_dedupe_store
from .rate_limit import DynamoDBRateLimitStore, create_dynamodb_rate_limit_store
from .adaptive_rate_limit import (
    DynamoDBAdaptiveRateLimitStore,
    create_dynamodb_adaptive_rate_limit_store,
)
from .cloudwatch import (
    CloudWatchMetricsPublisher,
    create_cloudwatch_client,
    operation_metrics,
    cache_metrics,
    rate_limit_metrics,
)
from . import schema


__all__ = [
    # Config
    "CircuitBreakerConfig",
    "DynamoDBStoreConfig",
    "DynamoDBStoreConfigInput",
    "merge_store_config",
    # Errors
    "DynamoDBStoreError",
    "is_conditional_check_failed",
    "is_throttling_error",
    "is_severe_error",
    "is_retryable_error",
    # Resilience
    "CircuitBreaker",
    "CircuitBreakerStats",
    "CircuitState",
    "RetryPolicy",
    "RetryEvent",
    "calculate_backoff_delay",
    "ResilientExecutor",
    # Monitoring
    "StoreMonitor",
    "OperationMetric",
    "OperationSummary",
    "current_correlation_id",
    "CloudWatchMetricsPublisher",
    "create_cloudwatch_client",
    "operation_metrics",
    "cache_metrics",
    "rate_limit_metrics",
    # Table
    "create_table",
    "close_table",
    "schema",
    # Stores
    "DynamoDBStoreBase",
    "DynamoDBCacheStore",
    "DynamoDBCacheStats",
    "create_dynamodb_cache_store",
    "DynamoDBDedupeStore",
    "create_dynamodb_dedupe_store",
    "DynamoDBRateLimitStore",
    "create_dynamodb_rate_limit_store",
    "DynamoDBAdaptiveRateLimitStore",
    "create_dynamodb_adaptive_rate_limit_store",
]

__version__ = "1.0.0"
