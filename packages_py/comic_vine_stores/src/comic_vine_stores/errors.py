"""
Error hierarchy shared by every store backend.
"""
from typing import Optional


class StoreError(Exception):
    """Base class for store failures."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.cause = cause


class StoreDestroyedError(StoreError):
    """Raised by any operation invoked on a closed store."""

    def __init__(self, store_name: str, operation: Optional[str] = None) -> None:
        super().__init__(
            f"{store_name} has been destroyed and cannot be used",
            operation=operation,
        )
        self.store_name = store_name


class ItemSizeError(StoreError):
    """Serialized value is larger than the backend accepts."""

    def __init__(self, size: int, limit: int, operation: Optional[str] = None) -> None:
        super().__init__(
            f"Item size {size} bytes exceeds the limit of {limit} bytes",
            operation=operation,
        )
        self.size = size
        self.limit = limit


class SerializationError(StoreError):
    """A value could not be encoded, or a stored payload could not be decoded."""


class DedupeTimeoutError(StoreError):
    """A waiter gave up on a pending dedupe job."""

    def __init__(self, key: str, timeout_ms: int, operation: str = "wait_for") -> None:
        super().__init__(
            f"Timed out after {timeout_ms}ms waiting for job {key}",
            operation=operation,
        )
        self.key = key
        self.timeout_ms = timeout_ms


class ThrottlingError(StoreError):
    """The backend kept throttling after every retry was spent."""


class CircuitBreakerOpenError(StoreError):
    """Call rejected without being attempted because the circuit is open."""

    def __init__(self, operation: str, next_attempt_ms: int) -> None:
        super().__init__(
            f"Circuit breaker is open for {operation}; next attempt allowed at {next_attempt_ms}",
            operation=operation,
        )
        self.next_attempt_ms = next_attempt_ms


class OperationTimeoutError(StoreError):
    """A single backend call took longer than the configured timeout."""

    def __init__(self, operation: str, timeout_ms: int) -> None:
        super().__init__(
            f"Operation {operation} timed out after {timeout_ms}ms",
            operation=operation,
        )
        self.timeout_ms = timeout_ms
