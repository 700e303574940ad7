"""
SQLite dedupe store.

Registration is a single ``INSERT ... ON CONFLICT DO UPDATE`` that only
replaces a row whose job is no longer pending (or was abandoned), so at most
one pending job exists per fingerprint even across processes sharing the file.
Waiters poll the row; in-process waiters are also woken as soon as this
store resolves the job.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional, Set

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from comic_vine_stores import (
    DedupeFailure,
    DedupeJob,
    DedupeJobStatus,
    DedupeRegistration,
    DedupeStore,
    DedupeTimeoutError,
    SerializationError,
    StoreDestroyedError,
    clock,
    decode_value,
    encode_value,
)

from .base import SQLiteStoreBase
from .database import MEMORY_PATH, SQLiteDatabase
from .schema import dedupe_jobs_table as jobs

logger = logging.getLogger(__name__)


@dataclass
class SQLiteDedupeStats:
    total_jobs: int
    pending_jobs: int
    completed_jobs: int
    failed_jobs: int


class SQLiteDedupeStore(SQLiteStoreBase, DedupeStore):
    """
    Dedupe jobs persisted in the ``dedupe_jobs`` table.
    """

    store_name = "SQLiteDedupeStore"

    def __init__(
        self,
        path: str = MEMORY_PATH,
        database: Optional[SQLiteDatabase] = None,
        cleanup_interval_ms: int = 300_000,
        job_timeout_ms: int = 300_000,
        poll_interval_ms: int = 100,
    ) -> None:
        """
        Args:
            path: Database file path, or ``:memory:``
            database: Shared SQLiteDatabase; not disposed by this store
            cleanup_interval_ms: How often old jobs are swept. 0 disables it
            job_timeout_ms: Age after which a pending job is treated as abandoned
            poll_interval_ms: How often waiters re-read the job row
        """
        super().__init__(path, database, cleanup_interval_ms)
        self._job_timeout_ms = job_timeout_ms
        self._poll_interval_ms = poll_interval_ms
        self._wakeups: Dict[str, Set[asyncio.Event]] = {}

    def _wake(self, key: str) -> None:
        for event in self._wakeups.get(key, ()):
            event.set()

    async def _load(self, key: str) -> Optional[DedupeJob]:
        async with self._db.transaction() as conn:
            row = (await conn.execute(select(jobs).where(jobs.c.hash == key))).first()
        if row is None:
            return None
        return DedupeJob(
            key=row.hash,
            job_id=row.job_id,
            status=DedupeJobStatus(row.status),
            created_at=row.created_at,
            updated_at=row.updated_at,
            result=row.result,
            error=row.error,
        )

    async def try_register(self, key: str) -> DedupeRegistration:
        self._ensure_open("register")
        now = clock.now_ms()
        new_job_id = str(uuid.uuid4())
        stmt = sqlite_insert(jobs).values(
            hash=key,
            job_id=new_job_id,
            status=DedupeJobStatus.PENDING.value,
            result=None,
            error=None,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[jobs.c.hash],
            set_={
                "job_id": stmt.excluded.job_id,
                "status": stmt.excluded.status,
                "result": None,
                "error": None,
                "created_at": stmt.excluded.created_at,
                "updated_at": stmt.excluded.updated_at,
            },
            where=or_(
                jobs.c.status != DedupeJobStatus.PENDING.value,
                jobs.c.created_at <= now - self._job_timeout_ms,
            ),
        )
        async with self._db.transaction() as conn:
            await conn.execute(stmt)
            job_id = (
                await conn.execute(select(jobs.c.job_id).where(jobs.c.hash == key))
            ).scalar_one()
        return DedupeRegistration(job_id=job_id, created=job_id == new_job_id)

    async def wait_for(self, key: str) -> Optional[Any]:
        self._ensure_open("wait_for")
        job = await self._load(key)
        if job is None:
            return None
        if job.status == DedupeJobStatus.PENDING and self._expired(job, clock.now_ms()):
            return None

        job_id = job.job_id
        deadline = job.created_at + self._job_timeout_ms
        event = asyncio.Event()
        self._wakeups.setdefault(key, set()).add(event)
        try:
            while True:
                if job is None or job.job_id != job_id:
                    if clock.now_ms() >= deadline:
                        raise DedupeTimeoutError(key, self._job_timeout_ms)
                    return None
                if job.status == DedupeJobStatus.COMPLETED:
                    return self._decode_result(key, job)
                if job.status == DedupeJobStatus.FAILED:
                    return None
                if clock.now_ms() >= deadline:
                    raise DedupeTimeoutError(key, self._job_timeout_ms)

                try:
                    await asyncio.wait_for(event.wait(), self._poll_interval_ms / 1000)
                except asyncio.TimeoutError:
                    pass
                event.clear()
                if self._closed:
                    raise StoreDestroyedError(self.store_name, "wait_for")
                job = await self._load(key)
        finally:
            waiters = self._wakeups.get(key)
            if waiters is not None:
                waiters.discard(event)
                if not waiters:
                    del self._wakeups[key]

    def _decode_result(self, key: str, job: DedupeJob) -> Optional[Any]:
        if job.result is None:
            return None
        try:
            return decode_value(job.result, operation="wait_for")
        except SerializationError:
            logger.warning(f"SQLiteDedupeStore: corrupt result for {key}")
            return None

    def _expired(self, job: DedupeJob, now: int) -> bool:
        return now - job.created_at >= self._job_timeout_ms

    async def _resolve(self, key: str, **values: Any) -> None:
        async with self._db.transaction() as conn:
            await conn.execute(
                update(jobs)
                .where(jobs.c.hash == key, jobs.c.status == DedupeJobStatus.PENDING.value)
                .values(updated_at=clock.now_ms(), **values)
            )
        self._wake(key)

    async def complete(self, key: str, value: Any) -> None:
        self._ensure_open("complete")
        await self._resolve(
            key,
            status=DedupeJobStatus.COMPLETED.value,
            result=encode_value(value, operation="complete"),
        )

    async def fail(self, key: str, error: DedupeFailure) -> None:
        self._ensure_open("fail")
        await self._resolve(key, status=DedupeJobStatus.FAILED.value, error=str(error))

    async def is_in_progress(self, key: str) -> bool:
        self._ensure_open("is_in_progress")
        cutoff = clock.now_ms() - self._job_timeout_ms
        async with self._db.transaction() as conn:
            count = (
                await conn.execute(
                    select(func.count())
                    .select_from(jobs)
                    .where(
                        jobs.c.hash == key,
                        jobs.c.status == DedupeJobStatus.PENDING.value,
                        jobs.c.created_at > cutoff,
                    )
                )
            ).scalar_one()
        return count > 0

    async def cleanup(self) -> int:
        """Delete jobs older than the job timeout, abandoned or resolved."""
        cutoff = clock.now_ms() - self._job_timeout_ms
        async with self._db.transaction() as conn:
            result = await conn.execute(delete(jobs).where(jobs.c.created_at <= cutoff))
        for key in list(self._wakeups):
            self._wake(key)
        if result.rowcount:
            logger.debug(f"SQLiteDedupeStore: removed {result.rowcount} expired jobs")
        return result.rowcount

    async def clear(self) -> None:
        self._ensure_open("clear")
        async with self._db.transaction() as conn:
            await conn.execute(delete(jobs))
        for key in list(self._wakeups):
            self._wake(key)

    async def get_stats(self) -> SQLiteDedupeStats:
        self._ensure_open("get_stats")
        async with self._db.transaction() as conn:
            rows = (
                await conn.execute(
                    select(jobs.c.status, func.count()).group_by(jobs.c.status)
                )
            ).all()
        counts = {status: count for status, count in rows}
        return SQLiteDedupeStats(
            total_jobs=sum(counts.values()),
            pending_jobs=counts.get(DedupeJobStatus.PENDING.value, 0),
            completed_jobs=counts.get(DedupeJobStatus.COMPLETED.value, 0),
            failed_jobs=counts.get(DedupeJobStatus.FAILED.value, 0),
        )

    async def _on_close(self) -> None:
        for key in list(self._wakeups):
            self._wake(key)


def create_sqlite_dedupe_store(**kwargs: Any) -> SQLiteDedupeStore:
    """Create a new SQLiteDedupeStore instance"""
    return SQLiteDedupeStore(**kwargs)
