"""
Type definitions and store contracts.

The orchestrator only talks to the abstract stores defined here. Each backend
package ships one concrete class per contract.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, List, Optional, Union


class RequestPriority(str, Enum):
    """Traffic class used by adaptive rate limiting."""
    USER = "user"
    BACKGROUND = "background"


class DedupeJobStatus(str, Enum):
    """Lifecycle of a dedupe job."""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class ActivityTrend(str, Enum):
    """Direction of recent user traffic."""
    INCREASING = "increasing"
    STABLE = "stable"
    DECREASING = "decreasing"
    NONE = "none"


@dataclass
class RateLimitConfig:
    """Request budget for a resource."""

    limit: int
    """Maximum requests admitted inside the window"""

    window_ms: int
    """Length of the trailing window in milliseconds"""


@dataclass
class RateLimitStatus:
    """Current rate limit status for a resource."""

    remaining: int
    """Requests that may still be admitted in the current window"""

    reset_time: datetime
    """When the oldest counted request leaves the window"""

    limit: int
    """Configured limit"""


@dataclass
class AdaptiveStatus:
    """Capacity split reported by adaptive stores."""

    user_reserved: int
    background_max: int
    background_paused: bool
    recent_user_activity: int
    reason: str


@dataclass
class AdaptiveRateLimitStatus(RateLimitStatus):
    """Rate limit status plus the adaptive breakdown."""

    adaptive: Optional[AdaptiveStatus] = None


@dataclass
class ActivityMetrics:
    """Recent per-priority request timestamps (epoch ms) for one resource."""

    recent_user_requests: List[int] = field(default_factory=list)
    recent_background_requests: List[int] = field(default_factory=list)
    user_activity_trend: ActivityTrend = ActivityTrend.NONE


@dataclass
class DynamicCapacityResult:
    """Output of the adaptive capacity calculator."""

    user_reserved: int
    background_max: int
    background_paused: bool
    reason: str


@dataclass
class DedupeJob:
    """A tracked in-flight request."""

    key: str
    job_id: str
    status: DedupeJobStatus
    created_at: int
    updated_at: int
    result: Any = None
    error: Optional[str] = None


@dataclass
class DedupeRegistration:
    """Outcome of registering a fingerprint."""

    job_id: str
    created: bool
    """True when this call started the job, False when it joined a pending one."""


DedupeFailure = Union[BaseException, str]


class Store(ABC):
    """Lifecycle shared by every store."""

    @abstractmethod
    async def close(self) -> None:
        """Stop background work and release owned resources. Safe to call twice."""
        pass

    async def __aenter__(self) -> "Store":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


class CacheStore(Store):
    """Fingerprint to value mapping with a time-to-live."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None when missing or expired."""
        pass

    @abstractmethod
    async def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        """Store a value. ``ttl_seconds <= 0`` expires it immediately."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove an entry if present."""
        pass

    @abstractmethod
    async def clear(self) -> None:
        """Remove every entry."""
        pass


class DedupeStore(Store):
    """Tracks in-flight requests so concurrent callers share one upstream call."""

    @abstractmethod
    async def try_register(self, key: str) -> DedupeRegistration:
        """
        Start a job for ``key`` or join the one already pending.

        Only the caller that receives ``created=True`` owns the job and must
        eventually complete or fail it.
        """
        pass

    async def register(self, key: str) -> str:
        """Start a job for ``key`` or return the id of the job already pending."""
        return (await self.try_register(key)).job_id

    @abstractmethod
    async def wait_for(self, key: str) -> Optional[Any]:
        """
        Wait for a pending job.

        Returns the result of a completed job, or None when there is no job or
        the job failed. Raises DedupeTimeoutError when the wait times out.
        """
        pass

    @abstractmethod
    async def complete(self, key: str, value: Any) -> None:
        """Resolve a pending job. No-op when resolved already or missing."""
        pass

    @abstractmethod
    async def fail(self, key: str, error: DedupeFailure) -> None:
        """Fail a pending job. No-op when resolved already or missing."""
        pass

    @abstractmethod
    async def is_in_progress(self, key: str) -> bool:
        """True while a non-abandoned job is pending."""
        pass


class RateLimitStore(Store):
    """Per-resource request accounting over a trailing window."""

    @abstractmethod
    async def can_proceed(self, resource: str) -> bool:
        pass

    @abstractmethod
    async def record(self, resource: str) -> None:
        pass

    @abstractmethod
    async def get_status(self, resource: str) -> RateLimitStatus:
        pass

    @abstractmethod
    async def reset(self, resource: str) -> None:
        pass

    @abstractmethod
    async def get_wait_time(self, resource: str) -> int:
        """Milliseconds until ``can_proceed`` would return True (0 if it already would)."""
        pass


class AdaptiveRateLimitStore(RateLimitStore):
    """Rate limit store that splits capacity between user and background traffic."""

    @abstractmethod
    async def can_proceed(
        self, resource: str, priority: Optional[RequestPriority] = None
    ) -> bool:
        pass

    @abstractmethod
    async def record(
        self, resource: str, priority: Optional[RequestPriority] = None
    ) -> None:
        pass

    @abstractmethod
    async def get_status(
        self, resource: str, priority: Optional[RequestPriority] = None
    ) -> AdaptiveRateLimitStatus:
        pass

    @abstractmethod
    async def get_wait_time(
        self, resource: str, priority: Optional[RequestPriority] = None
    ) -> int:
        pass
