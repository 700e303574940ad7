"""
JSON codec used by the persistent backends.
"""
import json
from typing import Any

from .errors import SerializationError


def encode_value(value: Any, operation: str = "encode") -> str:
    """Encode a value as compact JSON, raising SerializationError on failure."""
    try:
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise SerializationError(
            f"Value cannot be serialized: {e}", operation=operation, cause=e
        ) from e


def decode_value(payload: str, operation: str = "decode") -> Any:
    """Decode a stored JSON payload, raising SerializationError when corrupt."""
    try:
        return json.loads(payload)
    except (TypeError, ValueError) as e:
        raise SerializationError(
            f"Stored payload cannot be decoded: {e}", operation=operation, cause=e
        ) from e


def encoded_size(payload: str) -> int:
    """Size in bytes of an encoded payload."""
    return len(payload.encode("utf-8"))


def estimate_size(value: Any, fallback: int = 1024) -> int:
    """Best-effort byte size of a value, used for memory accounting."""
    try:
        return encoded_size(encode_value(value))
    except SerializationError:
        return fallback
