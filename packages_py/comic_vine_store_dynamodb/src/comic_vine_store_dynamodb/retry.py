"""
Retry with exponential backoff for remote store calls.
"""
import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from comic_vine_stores import StoreError, ThrottlingError

from .errors import is_retryable_error, is_throttling_error

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_BACKOFF_MS = 30_000
JITTER_FACTOR = 0.1


def calculate_backoff_delay(
    attempt: int,
    base_delay_ms: int,
    max_delay_ms: int = MAX_BACKOFF_MS,
    jitter_factor: float = JITTER_FACTOR,
) -> float:
    """
    Exponential backoff with additive jitter.

    delay = min(max, base * 2^attempt) + random(0, jitter * delay)

    Args:
        attempt: The current attempt number (0-indexed)
        base_delay_ms: Delay before the first retry
        max_delay_ms: Cap for the exponential part
        jitter_factor: Share of the delay added as random jitter

    Returns:
        Delay in milliseconds
    """
    exponential_delay = min(max_delay_ms, base_delay_ms * (2 ** attempt))
    return exponential_delay + random.random() * jitter_factor * exponential_delay


@dataclass
class RetryEvent:
    """Emitted before sleeping ahead of another attempt."""

    operation: str
    attempt: int
    delay_ms: float
    error: BaseException
    data: Dict[str, Any] = field(default_factory=dict)


RetryEventListener = Callable[[RetryEvent], None]


class RetryPolicy:
    """
    Retries transient and throttling failures.

    Non-retryable errors propagate unchanged. When the budget is spent a
    throttling failure becomes ThrottlingError; anything else is re-raised.
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay_ms: int = 100,
        should_retry: Callable[[BaseException], bool] = is_retryable_error,
    ) -> None:
        self._max_retries = max_retries
        self._base_delay_ms = base_delay_ms
        self._should_retry = should_retry
        self._listeners: List[RetryEventListener] = []

    def on(self, listener: RetryEventListener) -> None:
        self._listeners.append(listener)

    def off(self, listener: RetryEventListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(self, event: RetryEvent) -> None:
        for listener in self._listeners:
            try:
                listener(event)
            except Exception as e:
                logger.warning(f"Retry listener failed: {e}")

    async def execute(self, operation: str, fn: Callable[[], Awaitable[T]]) -> T:
        attempt = 0
        while True:
            try:
                return await fn()
            except Exception as error:
                retryable = not _is_fail_fast(error) and self._should_retry(error)
                if not retryable:
                    raise
                if attempt >= self._max_retries:
                    if is_throttling_error(error) and not isinstance(error, ThrottlingError):
                        raise ThrottlingError(
                            f"{operation} still throttled after {attempt + 1} attempts",
                            operation=operation,
                            cause=error,
                        ) from error
                    raise

                delay_ms = calculate_backoff_delay(attempt, self._base_delay_ms)
                logger.debug(
                    f"{operation} failed on attempt {attempt + 1}, retrying in {delay_ms:.0f}ms: {error}"
                )
                self._emit(RetryEvent(operation=operation, attempt=attempt, delay_ms=delay_ms, error=error))
                await asyncio.sleep(delay_ms / 1000)
                attempt += 1


def _is_fail_fast(error: BaseException) -> bool:
    """Store errors raised on purpose (open circuit, size limits) are final."""
    return isinstance(error, StoreError) and not is_retryable_error(error)
