"""
Resilient execution of blocking boto3 calls.

Each call is layered, outermost first: monitor, retry, circuit breaker,
per-call timeout, and finally a worker thread running the boto3 method.
"""
import asyncio
import functools
from typing import Any, Callable, Optional, TypeVar

from botocore.exceptions import ClientError

from comic_vine_stores import OperationTimeoutError, StoreError

from .circuit_breaker import CircuitBreaker, CircuitBreakerStats
from .config import DynamoDBStoreConfig
from .errors import DynamoDBStoreError, is_conditional_check_failed
from .monitoring import StoreMonitor
from .retry import RetryPolicy

T = TypeVar("T")


class ResilientExecutor:
    """
    Runs boto3 calls with retry, circuit breaking and timeouts.

    Conditional check failures and StoreError subclasses propagate as they
    are; any other failure is wrapped in DynamoDBStoreError.
    """

    def __init__(
        self,
        config: Optional[DynamoDBStoreConfig] = None,
        monitor: Optional[StoreMonitor] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> None:
        self._config = config or DynamoDBStoreConfig()
        self._monitor = monitor
        self._breaker = circuit_breaker or CircuitBreaker(self._config.circuit_breaker)
        self._retry = retry_policy or RetryPolicy(
            max_retries=self._config.max_retries,
            base_delay_ms=self._config.retry_delay_ms,
        )

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._breaker

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry

    def get_circuit_breaker_stats(self) -> CircuitBreakerStats:
        return self._breaker.get_stats()

    async def call(self, operation: str, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """
        Run a blocking function with every resilience layer applied.

        Example:
            item = await executor.call("cache.get", table.get_item, Key=key)
        """
        bound = functools.partial(fn, *args, **kwargs)
        timeout_ms = self._config.circuit_breaker.timeout_ms

        async def attempt() -> T:
            try:
                return await asyncio.wait_for(asyncio.to_thread(bound), timeout_ms / 1000)
            except asyncio.TimeoutError:
                raise OperationTimeoutError(operation, timeout_ms) from None

        async def guarded() -> T:
            return await self._breaker.execute(operation, attempt)

        async def retried() -> T:
            try:
                return await self._retry.execute(operation, guarded)
            except ClientError as error:
                if is_conditional_check_failed(error):
                    raise
                raise DynamoDBStoreError(
                    f"DynamoDB operation {operation} failed: {error}",
                    operation=operation,
                    cause=error,
                ) from error
            except StoreError:
                raise
            except Exception as error:
                raise DynamoDBStoreError(
                    f"DynamoDB operation {operation} failed: {error}",
                    operation=operation,
                    cause=error,
                ) from error

        if self._monitor is None:
            return await retried()
        return await self._monitor.track(operation, retried)
