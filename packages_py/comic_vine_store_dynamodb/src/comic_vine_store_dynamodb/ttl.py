"""
TTL helpers.

DynamoDB expects the ``TTL`` attribute in epoch seconds and only uses it for
native expiry. Reads compare against ``Data.expiresAt`` in milliseconds so an
entry is never treated as expired before its full TTL has passed.
"""
import math
from typing import Any, Mapping, Optional

from comic_vine_stores import clock

from . import schema

EXPIRES_AT = "expiresAt"


def now_seconds() -> int:
    return clock.now_ms() // 1000


def expires_at_ms(ttl_seconds: float) -> int:
    """Absolute expiry in ms for a relative TTL; ``ttl_seconds <= 0`` expires now."""
    now = clock.now_ms()
    if ttl_seconds <= 0:
        return now
    return now + int(math.ceil(ttl_seconds * 1000))


def ttl_from_ms(expires_at: int) -> int:
    """TTL attribute for an expiry in ms, rounded up so it never precedes it."""
    return math.ceil(expires_at / 1000)


def item_expires_at(item: Mapping[str, Any]) -> Optional[int]:
    """Expiry of a row in ms, from ``Data.expiresAt`` or else its TTL attribute."""
    data = item.get(schema.DATA)
    if isinstance(data, Mapping) and data.get(EXPIRES_AT) is not None:
        return int(data[EXPIRES_AT])
    ttl = item.get(schema.TTL)
    return int(ttl) * 1000 if ttl is not None else None


def is_item_expired(item: Mapping[str, Any]) -> bool:
    expires_at = item_expires_at(item)
    return expires_at is not None and clock.now_ms() >= expires_at
