"""
Request fingerprinting.

A fingerprint is the SHA-256 of the canonical JSON form of
``{"endpoint": ..., "params": ...}`` where every mapping inside ``params`` has
its keys sorted. ``UNSET`` values are dropped the same way an omitted key
would be, while ``None`` survives as JSON ``null``.
"""
import hashlib
import json
from typing import Any, Mapping, Optional


class _Unset:
    """Marker for a parameter that was never provided."""

    _instance: Optional["_Unset"] = None

    def __new__(cls) -> "_Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


def sort_params(value: Any) -> Any:
    """
    Recursively rebuild a parameter value with sorted mapping keys.

    Lists keep their order. An ``UNSET`` list item becomes ``None``, which is
    how JSON encoders treat a missing array slot.
    """
    if isinstance(value, Mapping):
        return {
            key: sort_params(value[key])
            for key in sorted(value)
            if value[key] is not UNSET
        }
    if isinstance(value, (list, tuple)):
        return [None if item is UNSET else sort_params(item) for item in value]
    return value


def canonicalize(endpoint: str, params: Optional[Mapping[str, Any]] = None) -> str:
    """Render the canonical JSON string that gets hashed."""
    payload = {"endpoint": endpoint, "params": sort_params(params or {})}
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


def hash_request(endpoint: str, params: Optional[Mapping[str, Any]] = None) -> str:
    """
    Compute the fingerprint for an API call.

    Args:
        endpoint: Endpoint path or fully-qualified URL
        params: Query parameters, possibly nested

    Returns:
        64 character lowercase hex digest

    Example:
        hash_request("issues", {"limit": 10, "offset": 0})
    """
    canonical = canonicalize(endpoint, params)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
