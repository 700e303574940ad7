"""
DynamoDB sliding window rate limit store.
"""
import uuid
from typing import Any, Dict, List, Mapping, Optional

from comic_vine_stores import (
    RateLimitConfig,
    RateLimitStatus,
    RateLimitStore,
    ResourceConfigRegistry,
    clock,
)

from . import schema
from .base import DynamoDBStoreBase
from .batch import count_all, query_all
from .config import DynamoDBStoreConfigInput
from .executor import ResilientExecutor
from .monitoring import StoreMonitor
from .ttl import ttl_from_ms


class DynamoDBRequestLog(DynamoDBStoreBase):
    """
    Request records stored as ``RATELIMIT#<resource>`` / ``REQ#<ms>#<uuid>``.

    Sort keys embed a zero-padded timestamp, so the requests inside a window
    are a single range query on the partition. Each row carries a TTL so
    DynamoDB drops it once it can no longer affect any window.
    """

    entity_type = schema.RATELIMIT

    def __init__(
        self,
        config: DynamoDBStoreConfigInput = None,
        table: Optional[Any] = None,
        monitor: Optional[StoreMonitor] = None,
        executor: Optional[ResilientExecutor] = None,
        default_config: Optional[RateLimitConfig] = None,
        resource_configs: Optional[Mapping[str, RateLimitConfig]] = None,
    ) -> None:
        super().__init__(config, table, monitor, executor)
        self._configs = ResourceConfigRegistry(default_config, resource_configs)

    def _retention_ms(self, resource: str) -> int:
        return self._configs.get(resource).window_ms

    def _window_query(self, resource: str, cutoff_ms: int) -> Dict[str, Any]:
        return {
            "KeyConditionExpression": "#pk = :pk AND #sk > :from",
            "ExpressionAttributeNames": {"#pk": schema.PK, "#sk": schema.SK},
            "ExpressionAttributeValues": {
                ":pk": schema.rate_limit_partition(resource),
                ":from": schema.rate_limit_window_start(cutoff_ms),
            },
            "ConsistentRead": True,
        }

    async def _count(self, resource: str, now: int) -> int:
        cutoff = now - self._configs.get(resource).window_ms
        return await count_all(
            self._executor, self._table, "ratelimit.count", **self._window_query(resource, cutoff)
        )

    async def _records(self, resource: str, cutoff_ms: int) -> List[Dict[str, Any]]:
        """Records newer than ``cutoff_ms``, oldest first."""
        return await query_all(
            self._executor,
            self._table,
            "ratelimit.query",
            ScanIndexForward=True,
            **self._window_query(resource, cutoff_ms),
        )

    async def _timestamps(self, resource: str, now: int) -> List[int]:
        cutoff = now - self._configs.get(resource).window_ms
        records = await self._records(resource, cutoff)
        return [schema.parse_rate_limit_timestamp(r[schema.SK]) for r in records]

    async def _put_record(self, resource: str, now: int, data: Dict[str, Any]) -> None:
        pk = schema.rate_limit_partition(resource)
        ttl = ttl_from_ms(now + self._retention_ms(resource))
        item = {
            schema.PK: pk,
            schema.SK: schema.rate_limit_sort_key(now, str(uuid.uuid4())),
            **schema.expiration_index_key(schema.RATELIMIT, ttl, pk),
            schema.TTL: ttl,
            schema.DATA: {"timestamp": now, **data},
        }
        await self._call("record", "put_item", Item=item)

    async def _delete_resource(self, resource: str) -> int:
        records = await query_all(
            self._executor,
            self._table,
            "ratelimit.reset",
            KeyConditionExpression="#pk = :pk",
            ExpressionAttributeNames={"#pk": schema.PK},
            ExpressionAttributeValues={":pk": schema.rate_limit_partition(resource)},
        )
        return await self._delete_keys([schema.item_key(r) for r in records], "reset")

    def get_resource_config(self, resource: str) -> RateLimitConfig:
        return self._configs.get(resource)

    def set_resource_config(self, resource: str, config: RateLimitConfig) -> None:
        self._configs.set(resource, config)


class DynamoDBRateLimitStore(DynamoDBRequestLog, RateLimitStore):
    """
    Rate limiting shared by every process using the table.
    """

    store_name = "DynamoDBRateLimitStore"

    async def can_proceed(self, resource: str) -> bool:
        self._ensure_open("can_proceed")
        config = self._configs.get(resource)
        if config.limit <= 0:
            return False
        return await self._count(resource, clock.now_ms()) < config.limit

    async def record(self, resource: str) -> None:
        self._ensure_open("record")
        await self._put_record(resource, clock.now_ms(), {})

    async def get_status(self, resource: str) -> RateLimitStatus:
        self._ensure_open("get_status")
        config = self._configs.get(resource)
        now = clock.now_ms()
        timestamps = await self._timestamps(resource, now)
        reset_at = (timestamps[0] if timestamps else now) + config.window_ms
        return RateLimitStatus(
            remaining=max(0, config.limit - len(timestamps)),
            reset_time=clock.to_datetime(reset_at),
            limit=config.limit,
        )

    async def reset(self, resource: str) -> None:
        self._ensure_open("reset")
        await self._delete_resource(resource)

    async def get_wait_time(self, resource: str) -> int:
        self._ensure_open("get_wait_time")
        config = self._configs.get(resource)
        if config.limit <= 0:
            return config.window_ms
        now = clock.now_ms()
        timestamps = await self._timestamps(resource, now)
        if len(timestamps) < config.limit:
            return 0
        # The request whose expiry frees a slot
        blocking = timestamps[len(timestamps) - config.limit]
        return min(config.window_ms, max(1, blocking + config.window_ms - now))


def create_dynamodb_rate_limit_store(**kwargs: Any) -> DynamoDBRateLimitStore:
    """Create a new DynamoDBRateLimitStore instance"""
    return DynamoDBRateLimitStore(**kwargs)
