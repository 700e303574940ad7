"""
DynamoDB dedupe store.

Ownership of a fingerprint is decided by a conditional put on its single
``DEDUPE#<fingerprint>`` / ``JOB`` row: the put only succeeds when no row
exists, the previous job expired, or it is no longer pending.
"""
import asyncio
import logging
import uuid
from typing import Any, Dict, Optional

from botocore.exceptions import ClientError

from comic_vine_stores import (
    DedupeFailure,
    DedupeJobStatus,
    DedupeRegistration,
    DedupeStore,
    DedupeTimeoutError,
    SerializationError,
    clock,
    decode_value,
    encode_value,
    encoded_size,
)

from . import schema
from .base import DynamoDBStoreBase
from .config import DynamoDBStoreConfigInput
from .errors import DynamoDBStoreError, is_conditional_check_failed
from .executor import ResilientExecutor
from .monitoring import StoreMonitor
from .ttl import EXPIRES_AT, is_item_expired, item_expires_at, ttl_from_ms

logger = logging.getLogger(__name__)

REGISTER_ATTEMPTS = 3

_NAMES = {
    "#pk": schema.PK,
    "#data": schema.DATA,
    "#status": "status",
    "#expiresAt": EXPIRES_AT,
}


class DynamoDBDedupeStore(DynamoDBStoreBase, DedupeStore):
    """
    Dedupe jobs stored in the shared table.
    """

    store_name = "DynamoDBDedupeStore"
    entity_type = schema.DEDUPE

    def __init__(
        self,
        config: DynamoDBStoreConfigInput = None,
        table: Optional[Any] = None,
        monitor: Optional[StoreMonitor] = None,
        executor: Optional[ResilientExecutor] = None,
        job_timeout_seconds: int = schema.DEFAULT_DEDUPE_TTL_SECONDS,
        max_wait_ms: int = 30_000,
        poll_interval_ms: int = 100,
    ) -> None:
        """
        Args:
            job_timeout_seconds: Age after which a pending job is abandoned
            max_wait_ms: Longest a single wait_for call blocks
            poll_interval_ms: How often waiters re-read the job row
        """
        super().__init__(config, table, monitor, executor)
        self._job_timeout_seconds = job_timeout_seconds
        self._max_wait_ms = max_wait_ms
        self._poll_interval_ms = poll_interval_ms

    async def _load(self, key: str) -> Optional[Dict[str, Any]]:
        response = await self._call(
            "get", "get_item", Key=schema.dedupe_key(key), ConsistentRead=True
        )
        return response.get("Item")

    @staticmethod
    def _status(item: Dict[str, Any]) -> Optional[str]:
        data = item.get(schema.DATA)
        return data.get("status") if isinstance(data, dict) else None

    def _is_live(self, item: Optional[Dict[str, Any]]) -> bool:
        return (
            item is not None
            and self._status(item) == DedupeJobStatus.PENDING.value
            and not is_item_expired(item)
        )

    async def try_register(self, key: str) -> DedupeRegistration:
        self._ensure_open("register")
        for _ in range(REGISTER_ATTEMPTS):
            job_id = str(uuid.uuid4())
            now_ms = clock.now_ms()
            expires_at = now_ms + self._job_timeout_seconds * 1000
            ttl = ttl_from_ms(expires_at)
            keys = schema.dedupe_key(key)
            item = {
                **keys,
                **schema.expiration_index_key(schema.DEDUPE, ttl, keys[schema.PK]),
                schema.TTL: ttl,
                schema.DATA: {
                    "jobId": job_id,
                    "status": DedupeJobStatus.PENDING.value,
                    "createdAt": now_ms,
                    "updatedAt": now_ms,
                    EXPIRES_AT: expires_at,
                },
            }
            try:
                await self._call(
                    "register",
                    "put_item",
                    Item=item,
                    ConditionExpression=(
                        "attribute_not_exists(#pk) OR #data.#expiresAt <= :now OR #data.#status <> :pending"
                    ),
                    ExpressionAttributeNames=_NAMES,
                    ExpressionAttributeValues={
                        ":now": now_ms,
                        ":pending": DedupeJobStatus.PENDING.value,
                    },
                )
                return DedupeRegistration(job_id=job_id, created=True)
            except ClientError as error:
                if not is_conditional_check_failed(error):
                    raise

            existing = await self._load(key)
            if self._is_live(existing):
                return DedupeRegistration(job_id=existing[schema.DATA]["jobId"], created=False)
            # The other job resolved or expired between the put and the read
            logger.debug(f"DynamoDBDedupeStore: register race on {key}, retrying")

        raise DynamoDBStoreError(
            f"Could not register job for {key} after {REGISTER_ATTEMPTS} attempts",
            operation="dedupe.register",
        )

    async def wait_for(self, key: str) -> Optional[Any]:
        self._ensure_open("wait_for")
        item = await self._load(key)
        if item is None:
            return None
        if self._status(item) == DedupeJobStatus.PENDING.value and is_item_expired(item):
            return None

        job_id = item[schema.DATA].get("jobId")
        expires_at_ms = item_expires_at(item) or 0
        deadline = min(clock.now_ms() + self._max_wait_ms, expires_at_ms)
        while True:
            if item is None or item[schema.DATA].get("jobId") != job_id:
                if clock.now_ms() >= expires_at_ms:
                    raise DedupeTimeoutError(key, self._job_timeout_seconds * 1000)
                return None

            status = self._status(item)
            if status == DedupeJobStatus.COMPLETED.value:
                return self._decode_result(key, item)
            if status == DedupeJobStatus.FAILED.value:
                return None
            if clock.now_ms() >= deadline:
                raise DedupeTimeoutError(key, self._max_wait_ms)

            await asyncio.sleep(self._poll_interval_ms / 1000)
            self._ensure_open("wait_for")
            item = await self._load(key)

    @staticmethod
    def _decode_result(key: str, item: Dict[str, Any]) -> Optional[Any]:
        payload = item[schema.DATA].get("result")
        if payload is None:
            return None
        try:
            return decode_value(payload, operation="wait_for")
        except SerializationError:
            logger.warning(f"DynamoDBDedupeStore: corrupt result for {key}")
            return None

    async def _resolve(self, key: str, operation: str, status: DedupeJobStatus, field: str, value: str) -> None:
        try:
            await self._call(
                operation,
                "update_item",
                Key=schema.dedupe_key(key),
                UpdateExpression=(
                    "SET #data.#status = :status, #data.#field = :value, #data.#updatedAt = :now"
                ),
                ConditionExpression="#data.#status = :pending",
                ExpressionAttributeNames={
                    "#data": schema.DATA,
                    "#status": "status",
                    "#field": field,
                    "#updatedAt": "updatedAt",
                },
                ExpressionAttributeValues={
                    ":status": status.value,
                    ":value": value,
                    ":now": clock.now_ms(),
                    ":pending": DedupeJobStatus.PENDING.value,
                },
            )
        except ClientError as error:
            # Already resolved or never registered
            if not is_conditional_check_failed(error):
                raise

    async def complete(self, key: str, value: Any) -> None:
        self._ensure_open("complete")
        payload = encode_value(value, operation="complete")
        size = encoded_size(payload)
        if size > schema.MAX_ITEM_SIZE_BYTES:
            logger.warning(
                f"DynamoDBDedupeStore: result for {key} is {size} bytes, failing job instead"
            )
            await self._resolve(
                key, "fail", DedupeJobStatus.FAILED, "error",
                f"Result size {size} exceeds {schema.MAX_ITEM_SIZE_BYTES} bytes",
            )
            return
        await self._resolve(key, "complete", DedupeJobStatus.COMPLETED, "result", payload)

    async def fail(self, key: str, error: DedupeFailure) -> None:
        self._ensure_open("fail")
        await self._resolve(key, "fail", DedupeJobStatus.FAILED, "error", str(error))

    async def is_in_progress(self, key: str) -> bool:
        self._ensure_open("is_in_progress")
        return self._is_live(await self._load(key))

    async def clear(self) -> None:
        """Delete every dedupe row."""
        self._ensure_open("clear")
        await self._delete_entity_type()

    @property
    def job_timeout_ms(self) -> int:
        return self._job_timeout_seconds * 1000


def create_dynamodb_dedupe_store(**kwargs: Any) -> DynamoDBDedupeStore:
    """Create a new DynamoDBDedupeStore instance"""
    return DynamoDBDedupeStore(**kwargs)


