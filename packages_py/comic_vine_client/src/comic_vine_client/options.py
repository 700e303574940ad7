"""
Client options.
"""
from typing import Any, Mapping, Union
from urllib.parse import urlsplit

from pydantic import BaseModel, Field, ValidationError, field_validator

from comic_vine_stores import RequestPriority

from .errors import OptionsValidationError

DEFAULT_BASE_URL = "https://comicvine.gamespot.com/api/"


class ClientOptions(BaseModel):
    """Options for StoreBackedClient."""

    base_url: str = Field(
        default=DEFAULT_BASE_URL,
        description="Root of the Comic Vine API",
    )
    throw_on_rate_limit: bool = Field(
        default=True,
        description="Raise RateLimitExceededError instead of waiting for budget",
    )
    max_wait_time_ms: int = Field(
        default=60_000,
        ge=0,
        description="Longest a request waits for rate limit budget",
    )
    default_cache_ttl_seconds: int = Field(
        default=3600,
        ge=0,
        description="TTL for cached responses when a request does not set one",
    )
    default_priority: RequestPriority = Field(
        default=RequestPriority.USER,
        description="Priority used with adaptive rate limit stores",
    )

    model_config = {"frozen": True}

    @field_validator("base_url")
    @classmethod
    def _check_base_url(cls, value: str) -> str:
        parts = urlsplit(value)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise ValueError("Invalid url")
        return value if value.endswith("/") else f"{value}/"


ClientOptionsInput = Union[ClientOptions, Mapping[str, Any], None]


def load_options(options: ClientOptionsInput = None) -> ClientOptions:
    """
    Build ClientOptions from a model, a partial mapping or nothing.

    Raises:
        OptionsValidationError: On the first invalid field
    """
    if isinstance(options, ClientOptions):
        return options
    try:
        return ClientOptions(**dict(options or {}))
    except ValidationError as e:
        first = e.errors()[0]
        path = ".".join(str(part) for part in first["loc"]) or "options"
        raise OptionsValidationError(path, first["msg"]) from e
