"""
Operation monitoring for remote store calls.

A StoreMonitor is created by the application and handed to the stores that
should report into it. ``track`` wraps a call, times it and tags it with a
correlation id; nested calls inherit the id of the outermost one.
"""
import logging
import time
import uuid
from collections import deque
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Awaitable, Callable, Deque, Dict, List, Optional, TypeVar

from comic_vine_stores import clock

logger = logging.getLogger(__name__)

T = TypeVar("T")

current_correlation_id: ContextVar[Optional[str]] = ContextVar(
    "current_correlation_id", default=None
)


@dataclass
class OperationMetric:
    operation: str
    correlation_id: str
    started_at: int
    duration_ms: float
    success: bool
    error_type: Optional[str] = None


@dataclass
class OperationSummary:
    count: int = 0
    failures: int = 0
    total_duration_ms: float = 0.0

    @property
    def average_duration_ms(self) -> float:
        return self.total_duration_ms / self.count if self.count else 0.0


MetricListener = Callable[[OperationMetric], None]


class StoreMonitor:
    """Collects timing metrics for store operations."""

    def __init__(self, max_metrics: int = 1000) -> None:
        self._metrics: Deque[OperationMetric] = deque(maxlen=max_metrics)
        self._listeners: List[MetricListener] = []

    def on(self, listener: MetricListener) -> None:
        self._listeners.append(listener)

    def off(self, listener: MetricListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(self, metric: OperationMetric) -> None:
        for listener in self._listeners:
            try:
                listener(metric)
            except Exception as e:
                logger.warning(f"Metric listener failed: {e}")

    async def track(
        self,
        operation: str,
        fn: Callable[[], Awaitable[T]],
        correlation_id: Optional[str] = None,
    ) -> T:
        """Run ``fn`` and record how long it took and whether it failed."""
        inherited = current_correlation_id.get()
        cid = correlation_id or inherited or str(uuid.uuid4())
        token = current_correlation_id.set(cid) if cid != inherited else None
        started_at = clock.now_ms()
        start = time.perf_counter()
        error_type: Optional[str] = None
        try:
            return await fn()
        except Exception as error:
            error_type = type(error).__name__
            raise
        finally:
            if token is not None:
                current_correlation_id.reset(token)
            self.record(
                OperationMetric(
                    operation=operation,
                    correlation_id=cid,
                    started_at=started_at,
                    duration_ms=(time.perf_counter() - start) * 1000,
                    success=error_type is None,
                    error_type=error_type,
                )
            )

    def record(self, metric: OperationMetric) -> None:
        self._metrics.append(metric)
        self._emit(metric)

    def get_metrics(self, operation: Optional[str] = None) -> List[OperationMetric]:
        return [m for m in self._metrics if operation is None or m.operation == operation]

    def get_summary(self) -> Dict[str, OperationSummary]:
        summary: Dict[str, OperationSummary] = {}
        for metric in self._metrics:
            entry = summary.setdefault(metric.operation, OperationSummary())
            entry.count += 1
            entry.total_duration_ms += metric.duration_ms
            if not metric.success:
                entry.failures += 1
        return summary

    def reset(self) -> None:
        self._metrics.clear()

    def close(self) -> None:
        self._metrics.clear()
        self._listeners.clear()
