"""
Publish store metrics to AWS CloudWatch.

A CloudWatchMetricsPublisher subscribes to a StoreMonitor, buffers one
duration/count pair per operation (plus an error count for failures) and
sends them with ``put_metric_data`` in batches of ``batch_size``. Batches go
out when the buffer fills, every ``flush_interval_ms`` and on ``close``.

Example:
    monitor = StoreMonitor()
    publisher = CloudWatchMetricsPublisher(create_cloudwatch_client(), namespace="ComicVine")
    publisher.attach(monitor)
    cache = DynamoDBCacheStore(config, monitor=monitor)
    ...
    await publisher.close()
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Set

import boto3

from comic_vine_stores import clock
from comic_vine_stores.sweeper import PeriodicSweeper

from .cache import DynamoDBCacheStats
from .monitoring import OperationMetric, StoreMonitor

logger = logging.getLogger(__name__)

# put_metric_data accepts at most this many datums per request
MAX_BATCH_SIZE = 20
DEFAULT_NAMESPACE = "ComicVineStore"

MetricDatum = Dict[str, Any]


def create_cloudwatch_client(region: Optional[str] = None, endpoint: Optional[str] = None) -> Any:
    """Create a boto3 CloudWatch client from the standard credential chain."""
    kwargs = {}
    if region:
        kwargs["region_name"] = region
    if endpoint:
        kwargs["endpoint_url"] = endpoint
    return boto3.client("cloudwatch", **kwargs)


def _timestamp(epoch_ms: Optional[int] = None) -> datetime:
    ms = clock.now_ms() if epoch_ms is None else epoch_ms
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


def _dimensions(values: Optional[Mapping[str, str]]) -> List[Dict[str, str]]:
    return [{"Name": name, "Value": value} for name, value in (values or {}).items()]


def _datum(
    name: str,
    value: float,
    unit: str,
    dimensions: Optional[Mapping[str, str]] = None,
    timestamp: Optional[int] = None,
) -> MetricDatum:
    datum: MetricDatum = {
        "MetricName": name,
        "Value": value,
        "Unit": unit,
        "Timestamp": _timestamp(timestamp),
    }
    dims = _dimensions(dimensions)
    if dims:
        datum["Dimensions"] = dims
    return datum


def duration_metric(
    operation: str,
    duration_ms: float,
    dimensions: Optional[Mapping[str, str]] = None,
    timestamp: Optional[int] = None,
) -> MetricDatum:
    return _datum(
        "OperationDuration", duration_ms, "Milliseconds",
        {"Operation": operation, **(dimensions or {})}, timestamp,
    )


def count_metric(
    name: str,
    count: float = 1,
    dimensions: Optional[Mapping[str, str]] = None,
    timestamp: Optional[int] = None,
) -> MetricDatum:
    return _datum(name, count, "Count", dimensions, timestamp)


def error_metric(
    operation: str,
    error_type: str,
    dimensions: Optional[Mapping[str, str]] = None,
    timestamp: Optional[int] = None,
) -> MetricDatum:
    return _datum(
        "Errors", 1, "Count",
        {"Operation": operation, "ErrorType": error_type, **(dimensions or {})}, timestamp,
    )


def operation_metrics(metric: OperationMetric) -> List[MetricDatum]:
    """CloudWatch datums for one tracked store operation."""
    datums = [
        duration_metric(metric.operation, metric.duration_ms, timestamp=metric.started_at),
        count_metric("OperationCount", 1, {"Operation": metric.operation}, metric.started_at),
    ]
    if not metric.success:
        datums.append(
            error_metric(metric.operation, metric.error_type or "Unknown", timestamp=metric.started_at)
        )
    return datums


def cache_metrics(store_name: str, stats: DynamoDBCacheStats) -> List[MetricDatum]:
    """Gauge datums for a cache stats snapshot."""
    dims = {"Store": store_name}
    return [
        count_metric("CacheTotalItems", stats.total_items, dims),
        count_metric("CacheExpiredItems", stats.expired_items, dims),
        _datum("CacheSize", stats.estimated_size_bytes, "Bytes", dims),
    ]


def rate_limit_metrics(resource: str, remaining: int, limit: int) -> List[MetricDatum]:
    """Gauge datums for one resource's rate limit status."""
    dims = {"Resource": resource}
    utilization = (limit - remaining) / limit * 100 if limit > 0 else 0.0
    return [
        count_metric("RateLimitRemaining", remaining, dims),
        count_metric("RateLimitTotal", limit, dims),
        _datum("RateLimitUtilization", utilization, "Percent", dims),
    ]


class CloudWatchMetricsPublisher:
    """
    Buffers metric datums and sends them to CloudWatch.

    A publisher built without a client is disabled: it accepts metrics and
    drops them, so callers can wire it up unconditionally.
    """

    def __init__(
        self,
        client: Optional[Any],
        namespace: str = DEFAULT_NAMESPACE,
        batch_size: int = MAX_BATCH_SIZE,
        flush_interval_ms: int = 60_000,
    ) -> None:
        """
        Args:
            client: boto3 CloudWatch client, or None to disable publishing
            namespace: CloudWatch namespace for every datum
            batch_size: Datums per put_metric_data call, capped at 20
            flush_interval_ms: Background flush period, 0 to flush only when
                the buffer fills or on close
        """
        self._client = client
        self._namespace = namespace
        self._batch_size = max(1, min(batch_size, MAX_BATCH_SIZE))
        self._buffer: List[MetricDatum] = []
        self._pending: Set[asyncio.Task] = set()
        self._monitors: List[StoreMonitor] = []
        self._timer = PeriodicSweeper(
            "CloudWatchMetricsPublisher", flush_interval_ms, self.flush
        )

    @property
    def enabled(self) -> bool:
        return self._client is not None

    @property
    def buffer_size(self) -> int:
        return len(self._buffer)

    def attach(self, monitor: StoreMonitor) -> None:
        """Publish every operation the monitor records from now on."""
        monitor.on(self.add_operation_metric)
        self._monitors.append(monitor)

    def detach(self, monitor: StoreMonitor) -> None:
        monitor.off(self.add_operation_metric)
        if monitor in self._monitors:
            self._monitors.remove(monitor)

    def add_operation_metric(self, metric: OperationMetric) -> None:
        self.add_metrics(operation_metrics(metric))

    def add_metrics(self, metrics: List[MetricDatum]) -> None:
        if not self.enabled or not metrics:
            return
        self._buffer.extend(metrics)
        self._timer.ensure_started()
        if len(self._buffer) >= self._batch_size:
            self._schedule_flush()

    def _schedule_flush(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Picked up by the next timer tick or by close()
            return
        task = loop.create_task(self._auto_flush())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _auto_flush(self) -> None:
        try:
            await self.flush()
        except Exception as e:
            logger.warning(f"CloudWatchMetricsPublisher: auto-flush failed: {e}")

    async def flush(self) -> None:
        """
        Send everything buffered now.

        On failure the unsent datums go back to the front of the buffer and
        the error propagates.
        """
        if not self.enabled or not self._buffer:
            return
        to_send, self._buffer = self._buffer, []
        sent = 0
        try:
            while sent < len(to_send):
                batch = to_send[sent:sent + self._batch_size]
                await asyncio.to_thread(
                    self._client.put_metric_data,
                    Namespace=self._namespace,
                    MetricData=batch,
                )
                sent += len(batch)
        except Exception:
            self._buffer = to_send[sent:] + self._buffer
            raise
        logger.debug(f"CloudWatchMetricsPublisher: sent {sent} datums to {self._namespace}")

    async def close(self) -> None:
        """Stop the timer, detach from monitors and flush what is left."""
        await self._timer.stop()
        for monitor in list(self._monitors):
            self.detach(monitor)
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        await self.flush()
