"""
Circuit breaker for remote store calls.

States:
- closed: calls go through; consecutive severe failures are counted
- open: calls fail fast with CircuitBreakerOpenError until the recovery timeout
- half_open: a single trial call is let through; success closes the circuit,
  a severe failure opens it again
"""
import logging
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from comic_vine_stores import CircuitBreakerOpenError, clock

from .config import CircuitBreakerConfig
from .errors import is_severe_error

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerStats:
    state: CircuitState
    failure_count: int
    last_failure_time: Optional[int] = None
    next_attempt_time: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["state"] = self.state.value
        return data


class CircuitBreaker:
    """
    Circuit breaker keyed on severe errors only. Other errors (validation,
    conditional check failures) pass through without touching the state.
    """

    def __init__(
        self,
        config: Optional[CircuitBreakerConfig] = None,
        is_failure: Callable[[BaseException], bool] = is_severe_error,
    ) -> None:
        self._config = config or CircuitBreakerConfig()
        self._is_failure = is_failure
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[int] = None
        self._next_attempt_time: Optional[int] = None
        self._trial_in_flight = False

    @property
    def state(self) -> CircuitState:
        self._update_state()
        return self._state

    async def execute(self, operation: str, fn: Callable[[], Awaitable[T]]) -> T:
        """
        Run ``fn`` under circuit breaker protection.

        Raises:
            CircuitBreakerOpenError: when the circuit is open, or a half-open
                trial is already running
        """
        if not self._config.enabled:
            return await fn()

        self._update_state()
        if self._state == CircuitState.OPEN:
            raise CircuitBreakerOpenError(operation, self._next_attempt_time or 0)

        trial = self._state == CircuitState.HALF_OPEN
        if trial:
            if self._trial_in_flight:
                raise CircuitBreakerOpenError(operation, self._next_attempt_time or 0)
            self._trial_in_flight = True

        try:
            result = await fn()
        except Exception as error:
            self._on_failure(operation, error)
            raise
        finally:
            if trial:
                self._trial_in_flight = False

        self._on_success(operation)
        return result

    def get_stats(self) -> CircuitBreakerStats:
        self._update_state()
        return CircuitBreakerStats(
            state=self._state,
            failure_count=self._failure_count,
            last_failure_time=self._last_failure_time,
            next_attempt_time=self._next_attempt_time,
        )

    def reset(self) -> None:
        """Force the circuit closed."""
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time = None
        self._next_attempt_time = None
        self._trial_in_flight = False

    def _update_state(self) -> None:
        now = clock.now_ms()
        if self._state == CircuitState.OPEN:
            if self._next_attempt_time is not None and now >= self._next_attempt_time:
                self._state = CircuitState.HALF_OPEN
                logger.debug("Circuit breaker half-open, allowing a trial call")
        elif self._state == CircuitState.CLOSED:
            # Failures spread further apart than the recovery timeout are not consecutive
            if (
                self._last_failure_time is not None
                and now - self._last_failure_time > self._config.recovery_timeout_ms
            ):
                self._failure_count = 0

    def _on_success(self, operation: str) -> None:
        if self._state == CircuitState.HALF_OPEN:
            logger.info(f"Circuit breaker closed after successful {operation}")
            self.reset()
        else:
            self._failure_count = 0

    def _on_failure(self, operation: str, error: BaseException) -> None:
        if not self._is_failure(error):
            return
        now = clock.now_ms()
        self._failure_count += 1
        self._last_failure_time = now

        if self._state == CircuitState.HALF_OPEN:
            self._open(operation, now)
        elif (
            self._state == CircuitState.CLOSED
            and self._failure_count >= self._config.failure_threshold
        ):
            self._open(operation, now)

    def _open(self, operation: str, now: int) -> None:
        self._state = CircuitState.OPEN
        self._next_attempt_time = now + self._config.recovery_timeout_ms
        logger.warning(
            f"Circuit breaker opened after {self._failure_count} failures "
            f"(last: {operation}); retrying after {self._config.recovery_timeout_ms}ms"
        )
