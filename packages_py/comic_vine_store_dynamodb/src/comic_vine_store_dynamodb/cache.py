"""
DynamoDB cache store.
"""
import logging
from dataclasses import dataclass
from typing import Any, Optional

from comic_vine_stores import (
    CacheStore,
    ItemSizeError,
    SerializationError,
    clock,
    decode_value,
    encode_value,
    encoded_size,
)

from . import schema
from .base import DynamoDBStoreBase
from .batch import scan_all
from .ttl import EXPIRES_AT, expires_at_ms, is_item_expired, ttl_from_ms

logger = logging.getLogger(__name__)


@dataclass
class DynamoDBCacheStats:
    total_items: int
    expired_items: int
    estimated_size_bytes: int


class DynamoDBCacheStore(DynamoDBStoreBase, CacheStore):
    """
    Cache entries stored as ``CACHE#<fingerprint>`` / ``DATA`` rows.

    Values are stored as a JSON string in ``Data.value``; anything larger
    than the DynamoDB item limit is rejected with ItemSizeError before a
    request is sent.
    """

    store_name = "DynamoDBCacheStore"
    entity_type = schema.CACHE

    async def get(self, key: str) -> Optional[Any]:
        self._ensure_open("get")
        response = await self._call(
            "get",
            "get_item",
            Key=schema.cache_key(key),
            ProjectionExpression="#ttl, #data",
            ExpressionAttributeNames={"#ttl": schema.TTL, "#data": schema.DATA},
        )
        item = response.get("Item")
        if item is None:
            return None

        if is_item_expired(item):
            await self._discard(key, "expired")
            return None

        try:
            return decode_value(item[schema.DATA]["value"], operation="get")
        except (SerializationError, KeyError, TypeError):
            logger.warning(f"DynamoDBCacheStore: purging corrupt entry {key}")
            await self._discard(key, "corrupt")
            return None

    async def _discard(self, key: str, reason: str) -> None:
        """Best-effort removal of an unreadable entry."""
        try:
            await self._call("delete", "delete_item", Key=schema.cache_key(key))
        except Exception as e:
            logger.warning(f"DynamoDBCacheStore: failed to remove {reason} entry {key}: {e}")

    async def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        self._ensure_open("set")
        payload = encode_value(value, operation="set")
        size = encoded_size(payload)
        if size > schema.MAX_ITEM_SIZE_BYTES:
            raise ItemSizeError(size, schema.MAX_ITEM_SIZE_BYTES, operation="cache.set")

        expires_at = expires_at_ms(ttl_seconds)
        ttl = ttl_from_ms(expires_at)
        keys = schema.cache_key(key)
        item = {
            **keys,
            **schema.expiration_index_key(schema.CACHE, ttl, keys[schema.PK]),
            schema.TTL: ttl,
            schema.DATA: {"value": payload, "createdAt": clock.now_ms(), EXPIRES_AT: expires_at},
        }
        await self._call("set", "put_item", Item=item)

    async def delete(self, key: str) -> None:
        self._ensure_open("delete")
        await self._call("delete", "delete_item", Key=schema.cache_key(key))

    async def clear(self) -> None:
        self._ensure_open("clear")
        await self._delete_entity_type()

    async def cleanup(self) -> int:
        """Delete expired entries. Returns how many were removed."""
        return await self._delete_expired()

    async def get_stats(self) -> DynamoDBCacheStats:
        """Scan every cache row. Expensive on large tables."""
        self._ensure_open("get_stats")
        items = await scan_all(
            self._executor,
            self._table,
            "cache.get_stats",
            FilterExpression="begins_with(#pk, :prefix)",
            ExpressionAttributeNames={"#pk": schema.PK},
            ExpressionAttributeValues={":prefix": f"{schema.CACHE}#"},
        )
        expired = sum(1 for i in items if is_item_expired(i))
        size = sum(
            encoded_size(i[schema.DATA]["value"])
            for i in items
            if isinstance(i.get(schema.DATA), dict) and isinstance(i[schema.DATA].get("value"), str)
        )
        return DynamoDBCacheStats(total_items=len(items), expired_items=expired, estimated_size_bytes=size)


def create_dynamodb_cache_store(**kwargs: Any) -> DynamoDBCacheStore:
    """Create a new DynamoDBCacheStore instance"""
    return DynamoDBCacheStore(**kwargs)
