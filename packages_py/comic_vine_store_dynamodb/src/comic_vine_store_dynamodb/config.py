"""
Configuration for the DynamoDB stores.
"""
from typing import Any, Mapping, Optional, Union

from pydantic import BaseModel, Field


class CircuitBreakerConfig(BaseModel):
    """Circuit breaker settings for remote calls."""

    enabled: bool = Field(default=True, description="Fail fast after repeated severe errors")
    failure_threshold: int = Field(
        default=5, ge=1, description="Consecutive severe failures that open the circuit"
    )
    recovery_timeout_ms: int = Field(
        default=60_000, ge=1000, description="Time the circuit stays open before a trial call"
    )
    timeout_ms: int = Field(
        default=30_000, gt=0, description="Per-call timeout, applied even when disabled"
    )

    model_config = {"frozen": True}


class DynamoDBStoreConfig(BaseModel):
    """Settings shared by every DynamoDB store."""

    table_name: str = Field(default="comic-vine-store", min_length=1)
    region: Optional[str] = Field(default=None, description="AWS region, e.g. us-east-1")
    endpoint: Optional[str] = Field(
        default=None, description="Endpoint override, e.g. DynamoDB Local"
    )
    max_retries: int = Field(default=3, ge=0)
    retry_delay_ms: int = Field(default=100, ge=0, description="Base delay for exponential backoff")
    batch_size: int = Field(
        default=25, ge=1, le=25, description="Items per BatchWriteItem call (DynamoDB caps it at 25)"
    )
    cleanup_interval_ms: int = Field(
        default=300_000, ge=0, description="Periodic sweep interval, 0 disables it"
    )
    circuit_breaker: CircuitBreakerConfig = Field(default_factory=CircuitBreakerConfig)

    model_config = {"frozen": True}


DynamoDBStoreConfigInput = Union[DynamoDBStoreConfig, Mapping[str, Any], None]


def merge_store_config(config: DynamoDBStoreConfigInput = None, **overrides: Any) -> DynamoDBStoreConfig:
    """
    Build a DynamoDBStoreConfig from a model, a mapping, keyword overrides or nothing.

    Raises:
        pydantic.ValidationError: when a value is out of range
    """
    if isinstance(config, DynamoDBStoreConfig):
        if not overrides:
            return config
        values = config.model_dump()
    else:
        values = dict(config or {})
    values.update(overrides)
    return DynamoDBStoreConfig(**values)
