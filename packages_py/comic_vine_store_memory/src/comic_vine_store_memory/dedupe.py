"""
In-memory dedupe store.

Register is a synchronous check-then-insert on a dict, which is atomic under
the event loop. Waiters block on their own futures, resolved by complete/fail.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from comic_vine_stores import (
    DedupeFailure,
    DedupeJob,
    DedupeJobStatus,
    DedupeRegistration,
    DedupeStore,
    DedupeTimeoutError,
    PeriodicSweeper,
    StoreDestroyedError,
    StoreError,
    clock,
)

logger = logging.getLogger(__name__)


@dataclass
class _JobEntry:
    job: DedupeJob
    waiters: List[asyncio.Future] = field(default_factory=list)


@dataclass
class MemoryDedupeStats:
    total_jobs: int
    pending_jobs: int
    completed_jobs: int
    failed_jobs: int
    expired_jobs: int


class MemoryDedupeStore(DedupeStore):
    """
    In-memory implementation of DedupeStore.
    """

    def __init__(
        self,
        job_timeout_ms: int = 300_000,
        cleanup_interval_ms: int = 60_000,
    ) -> None:
        """
        Create a new MemoryDedupeStore.

        Args:
            job_timeout_ms: Age after which a pending job is treated as abandoned
            cleanup_interval_ms: How often abandoned and old jobs are swept. 0 disables it
        """
        self._jobs: Dict[str, _JobEntry] = {}
        self._job_timeout_ms = job_timeout_ms
        self._sweeper = PeriodicSweeper(
            "MemoryDedupeStore", cleanup_interval_ms, self._sweep
        )
        self._closed = False

    def _ensure_open(self, operation: str) -> None:
        if self._closed:
            raise StoreDestroyedError("MemoryDedupeStore", operation)
        self._sweeper.ensure_started()

    def _is_expired(self, job: DedupeJob, now: int) -> bool:
        return now - job.created_at >= self._job_timeout_ms

    def _release(self, entry: _JobEntry, error: Optional[BaseException] = None) -> None:
        """Resolve every waiter with the job, or reject them with ``error``."""
        waiters, entry.waiters = entry.waiters, []
        for future in waiters:
            if future.done():
                continue
            if error is not None:
                future.set_exception(error)
            else:
                future.set_result(entry.job)

    def _abandon(self, key: str) -> None:
        entry = self._jobs.pop(key, None)
        if entry is None:
            return
        logger.debug(f"MemoryDedupeStore: job {entry.job.job_id} for {key} abandoned")
        self._release(entry, DedupeTimeoutError(key, self._job_timeout_ms))

    async def try_register(self, key: str) -> DedupeRegistration:
        """Start a job for ``key`` or join the one already pending."""
        self._ensure_open("register")
        now = clock.now_ms()
        entry = self._jobs.get(key)
        if entry is not None and entry.job.status == DedupeJobStatus.PENDING:
            if not self._is_expired(entry.job, now):
                return DedupeRegistration(job_id=entry.job.job_id, created=False)
            self._abandon(key)

        job = DedupeJob(
            key=key,
            job_id=str(uuid.uuid4()),
            status=DedupeJobStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        self._jobs[key] = _JobEntry(job=job)
        return DedupeRegistration(job_id=job.job_id, created=True)

    async def wait_for(self, key: str) -> Optional[Any]:
        """Wait for a job to finish. None when there is no job or it failed."""
        self._ensure_open("wait_for")
        entry = self._jobs.get(key)
        if entry is None:
            return None

        job = entry.job
        if job.status == DedupeJobStatus.COMPLETED:
            return job.result
        if job.status == DedupeJobStatus.FAILED:
            return None

        now = clock.now_ms()
        if self._is_expired(job, now):
            self._abandon(key)
            return None

        future: asyncio.Future = asyncio.get_running_loop().create_future()
        entry.waiters.append(future)
        remaining_ms = job.created_at + self._job_timeout_ms - now
        try:
            resolved: DedupeJob = await asyncio.wait_for(future, remaining_ms / 1000)
        except asyncio.TimeoutError:
            raise DedupeTimeoutError(key, self._job_timeout_ms) from None
        finally:
            if future in entry.waiters:
                entry.waiters.remove(future)

        if resolved.status == DedupeJobStatus.COMPLETED:
            return resolved.result
        return None

    async def complete(self, key: str, value: Any) -> None:
        """Resolve a pending job. First writer wins."""
        self._ensure_open("complete")
        entry = self._jobs.get(key)
        if entry is None or entry.job.status != DedupeJobStatus.PENDING:
            return
        entry.job.status = DedupeJobStatus.COMPLETED
        entry.job.result = value
        entry.job.updated_at = clock.now_ms()
        self._release(entry)

    async def fail(self, key: str, error: DedupeFailure) -> None:
        """Fail a pending job. First writer wins."""
        self._ensure_open("fail")
        entry = self._jobs.get(key)
        if entry is None or entry.job.status != DedupeJobStatus.PENDING:
            return
        entry.job.status = DedupeJobStatus.FAILED
        entry.job.error = str(error)
        entry.job.updated_at = clock.now_ms()
        self._release(entry)

    async def is_in_progress(self, key: str) -> bool:
        self._ensure_open("is_in_progress")
        entry = self._jobs.get(key)
        if entry is None or entry.job.status != DedupeJobStatus.PENDING:
            return False
        return not self._is_expired(entry.job, clock.now_ms())

    async def _sweep(self) -> None:
        self.cleanup()

    def cleanup(self) -> int:
        """Drop abandoned pending jobs and resolved jobs past the timeout."""
        now = clock.now_ms()
        expired = [
            key for key, entry in self._jobs.items() if self._is_expired(entry.job, now)
        ]
        for key in expired:
            self._abandon(key)
        return len(expired)

    async def clear(self) -> None:
        """Remove every job, rejecting anyone still waiting."""
        self._ensure_open("clear")
        entries = list(self._jobs.values())
        self._jobs.clear()
        for entry in entries:
            self._release(entry, StoreError("Dedupe store cleared", operation="clear"))

    def get_stats(self) -> MemoryDedupeStats:
        now = clock.now_ms()
        jobs = [entry.job for entry in self._jobs.values()]
        return MemoryDedupeStats(
            total_jobs=len(jobs),
            pending_jobs=sum(1 for j in jobs if j.status == DedupeJobStatus.PENDING),
            completed_jobs=sum(1 for j in jobs if j.status == DedupeJobStatus.COMPLETED),
            failed_jobs=sum(1 for j in jobs if j.status == DedupeJobStatus.FAILED),
            expired_jobs=sum(1 for j in jobs if self._is_expired(j, now)),
        )

    async def close(self) -> None:
        """Close the store; pending waiters are rejected with StoreDestroyedError."""
        if self._closed:
            return
        self._closed = True
        await self._sweeper.stop()
        entries = list(self._jobs.values())
        self._jobs.clear()
        for entry in entries:
            self._release(entry, StoreDestroyedError("MemoryDedupeStore", "close"))


def create_memory_dedupe_store(**kwargs: Any) -> MemoryDedupeStore:
    """Create a new MemoryDedupeStore instance"""
    return MemoryDedupeStore(**kwargs)
