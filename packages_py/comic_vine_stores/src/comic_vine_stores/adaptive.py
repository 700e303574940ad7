"""
Adaptive capacity calculator.

Splits a resource's request budget between user (foreground) and background
traffic according to how busy users have been recently. The calculator holds
no state beyond its configuration; stores pass in the request history.
"""
import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from . import clock
from .config import AdaptiveConfig, AdaptiveConfigInput, merge_adaptive_config
from .types import (
    ActivityMetrics,
    ActivityTrend,
    AdaptiveStatus,
    DynamicCapacityResult,
    RequestPriority,
)


class AdaptiveCapacityCalculator:
    """
    Decision ladder, first match wins:

    1. High activity: up to 90% for users, background paused while the trend rises
    2. Moderate activity: 40% base share scaled by a trend-adjusted multiplier, max 70%
    3. Zero activity: everything to background after sustained inactivity,
       otherwise a minimal user buffer
    4. Low activity or no history at all: 30% for users
    """

    def __init__(self, config: AdaptiveConfigInput = None) -> None:
        self.config: AdaptiveConfig = merge_adaptive_config(config)

    def calculate_dynamic_capacity(
        self,
        resource: str,
        total_limit: int,
        metrics: ActivityMetrics,
        now: Optional[int] = None,
        last_user_request_at: Optional[int] = None,
    ) -> DynamicCapacityResult:
        """
        Calculate the capacity split for a resource.

        Args:
            resource: Resource name (informational)
            total_limit: Total requests allowed in the resource window
            metrics: Recent request history
            now: Evaluation time in epoch ms, defaults to the current time
            last_user_request_at: Latest user request even if older than the
                monitoring window, used to measure sustained inactivity

        Returns:
            DynamicCapacityResult
        """
        now = clock.now_ms() if now is None else now
        cfg = self.config
        window_minutes = cfg.monitoring_window_ms / 60_000
        recent_user_activity = self.get_recent_activity(metrics.recent_user_requests, now)
        trend = self.calculate_activity_trend(metrics.recent_user_requests, now)

        if recent_user_activity >= cfg.high_activity_threshold:
            user_capacity = min(
                math.floor(total_limit * 0.9),
                math.floor(total_limit * 0.5 * cfg.max_user_scaling),
            )
            return DynamicCapacityResult(
                user_reserved=user_capacity,
                background_max=total_limit - user_capacity,
                background_paused=(
                    cfg.background_pause_on_increasing_trend
                    and trend == ActivityTrend.INCREASING
                ),
                reason=(
                    f"High user activity ({recent_user_activity} requests/"
                    f"{window_minutes:g}min) - prioritizing users"
                ),
            )

        if recent_user_activity >= cfg.moderate_activity_threshold and recent_user_activity > 0:
            multiplier = self.get_user_multiplier(recent_user_activity, trend)
            base_user_capacity = math.floor(total_limit * 0.4)
            user_capacity = min(
                math.floor(total_limit * 0.7),
                math.floor(base_user_capacity * multiplier),
            )
            return DynamicCapacityResult(
                user_reserved=user_capacity,
                background_max=total_limit - user_capacity,
                background_paused=False,
                reason=(
                    f"Moderate user activity - dynamic scaling "
                    f"({multiplier:.1f}x user capacity)"
                ),
            )

        last_seen = self._last_user_request(metrics.recent_user_requests, last_user_request_at)
        if recent_user_activity == 0 and last_seen is not None:
            inactivity = now - last_seen
            if inactivity > cfg.sustained_inactivity_threshold_ms:
                return DynamicCapacityResult(
                    user_reserved=0,
                    background_max=total_limit,
                    background_paused=False,
                    reason=(
                        f"Sustained zero activity ({inactivity // 60_000}+ min) - "
                        f"full capacity to background"
                    ),
                )
            user_reserved = min(cfg.min_user_reserved, total_limit)
            return DynamicCapacityResult(
                user_reserved=user_reserved,
                background_max=total_limit - user_reserved,
                background_paused=False,
                reason="Recent zero activity - background scale up with minimal user buffer",
            )

        user_reserved = min(
            max(math.floor(total_limit * 0.3), cfg.min_user_reserved), total_limit
        )
        return DynamicCapacityResult(
            user_reserved=user_reserved,
            background_max=total_limit - user_reserved,
            background_paused=False,
            reason=(
                f"Low user activity ({recent_user_activity} requests/"
                f"{window_minutes:g}min) - background scale up"
            ),
        )

    def get_recent_activity(self, requests: Iterable[int], now: Optional[int] = None) -> int:
        """Number of requests inside the monitoring window."""
        now = clock.now_ms() if now is None else now
        cutoff = now - self.config.monitoring_window_ms
        return sum(1 for timestamp in requests if timestamp > cutoff)

    def calculate_activity_trend(
        self, requests: Sequence[int], now: Optional[int] = None
    ) -> ActivityTrend:
        """Compare the latest third of the monitoring window with the third before it."""
        now = clock.now_ms() if now is None else now
        third = self.config.monitoring_window_ms / 3
        recent = sum(1 for t in requests if t > now - third)
        previous = sum(1 for t in requests if now - 2 * third < t <= now - third)

        if recent == 0 and previous == 0:
            return ActivityTrend.NONE
        if recent > previous * 1.5:
            return ActivityTrend.INCREASING
        if recent < previous * 0.5:
            return ActivityTrend.DECREASING
        return ActivityTrend.STABLE

    def get_user_multiplier(self, activity: int, trend: ActivityTrend) -> float:
        """Trend-adjusted user capacity multiplier, never below 1.0."""
        base = min(
            self.config.max_user_scaling,
            1 + activity / self.config.high_activity_threshold,
        )
        if trend == ActivityTrend.INCREASING:
            base *= 1.2
        elif trend == ActivityTrend.DECREASING:
            base *= 0.8
        return max(1.0, base)

    def build_metrics(
        self,
        user_requests: Iterable[int],
        background_requests: Iterable[int],
        now: Optional[int] = None,
    ) -> ActivityMetrics:
        """Trim raw timestamps to the monitoring window and attach the trend."""
        now = clock.now_ms() if now is None else now
        cutoff = now - self.config.monitoring_window_ms
        user: List[int] = sorted(t for t in user_requests if t > cutoff)
        background: List[int] = sorted(t for t in background_requests if t > cutoff)
        return ActivityMetrics(
            recent_user_requests=user,
            recent_background_requests=background,
            user_activity_trend=self.calculate_activity_trend(user, now),
        )

    @staticmethod
    def _last_user_request(
        requests: Sequence[int], last_user_request_at: Optional[int]
    ) -> Optional[int]:
        candidates = list(requests)
        if last_user_request_at is not None:
            candidates.append(last_user_request_at)
        return max(candidates) if candidates else None


@dataclass
class CachedCapacity:
    """A capacity split plus when it was computed."""

    result: DynamicCapacityResult
    calculated_at: int
    recent_user_activity: int


class CapacityPlanner:
    """
    Caches calculator output per resource for one recalculation interval so a
    busy resource is not recomputed on every admission check.
    """

    def __init__(self, calculator: AdaptiveCapacityCalculator) -> None:
        self.calculator = calculator
        self._cache: Dict[str, CachedCapacity] = {}

    @property
    def interval_ms(self) -> int:
        return self.calculator.config.recalculation_interval_ms

    def get_cached(self, resource: str, now: int) -> Optional[CachedCapacity]:
        """Cached split for a resource, or None when missing or stale."""
        cached = self._cache.get(resource)
        if cached is None or now - cached.calculated_at >= self.interval_ms:
            return None
        return cached

    def recalculate(
        self,
        resource: str,
        total_limit: int,
        metrics: ActivityMetrics,
        now: int,
        last_user_request_at: Optional[int] = None,
    ) -> CachedCapacity:
        """Run the calculator and cache the result."""
        result = self.calculator.calculate_dynamic_capacity(
            resource,
            total_limit,
            metrics,
            now=now,
            last_user_request_at=last_user_request_at,
        )
        cached = CachedCapacity(
            result=result,
            calculated_at=now,
            recent_user_activity=self.calculator.get_recent_activity(
                metrics.recent_user_requests, now
            ),
        )
        self._cache[resource] = cached
        return cached

    def remember(self, resource: str, cached: CachedCapacity) -> None:
        """Seed the cache with a split computed elsewhere."""
        self._cache[resource] = cached

    def invalidate(self, resource: str) -> None:
        self._cache.pop(resource, None)

    def clear(self) -> None:
        self._cache.clear()

    def time_until_recalculation(self, resource: str, now: int) -> int:
        """Milliseconds until the cached split for a resource goes stale."""
        cached = self._cache.get(resource)
        if cached is None:
            return self.interval_ms
        return max(0, cached.calculated_at + self.interval_ms - now)


def capacity_for(result: DynamicCapacityResult, priority: RequestPriority) -> int:
    """Requests the given priority class may use in the current window."""
    if priority == RequestPriority.USER:
        return result.user_reserved
    return result.background_max


def is_admitted(result: DynamicCapacityResult, priority: RequestPriority, used: int) -> bool:
    """Admission rule shared by every adaptive store."""
    if priority == RequestPriority.BACKGROUND and result.background_paused:
        return False
    return used < capacity_for(result, priority)


def to_adaptive_status(cached: CachedCapacity) -> AdaptiveStatus:
    result = cached.result
    return AdaptiveStatus(
        user_reserved=result.user_reserved,
        background_max=result.background_max,
        background_paused=result.background_paused,
        recent_user_activity=cached.recent_user_activity,
        reason=result.reason,
    )


def remaining_for(result: DynamicCapacityResult, priority: RequestPriority, used: int) -> int:
    """Requests a priority class can still make; 0 while background is paused."""
    if priority == RequestPriority.BACKGROUND and result.background_paused:
        return 0
    return max(0, capacity_for(result, priority) - used)


def adaptive_wait_time(
    result: DynamicCapacityResult,
    priority: RequestPriority,
    in_window: Sequence[int],
    window_ms: int,
    now: int,
    until_recalculation: int,
) -> int:
    """
    Milliseconds until a request of ``priority`` could be admitted.

    ``in_window`` holds the ascending timestamps of that class inside the
    resource window. A paused or zero-capacity class waits for the next
    recalculation, anything else for enough of its own requests to age out.
    """
    capacity = capacity_for(result, priority)
    blocked_by_policy = (
        priority == RequestPriority.BACKGROUND and result.background_paused
    ) or capacity <= 0
    if blocked_by_policy:
        return min(window_ms, max(1, until_recalculation))
    if len(in_window) < capacity:
        return 0
    oldest_blocking = in_window[len(in_window) - capacity]
    return min(window_ms, max(1, oldest_blocking + window_ms - now))
