"""
Configuration for rate limiting and adaptive capacity.
"""
from dataclasses import replace
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import BaseModel, Field, model_validator

from .types import RateLimitConfig


# Default budget for plain rate limit stores
DEFAULT_RATE_LIMIT_CONFIG = RateLimitConfig(limit=100, window_ms=60_000)

# Default budget for adaptive stores (Comic Vine allows 200 requests/hour per resource)
DEFAULT_ADAPTIVE_RATE_LIMIT_CONFIG = RateLimitConfig(limit=200, window_ms=3_600_000)


class AdaptiveConfig(BaseModel):
    """Tunables for the adaptive capacity calculator."""

    monitoring_window_ms: int = Field(
        default=15 * 60 * 1000,
        gt=0,
        description="Trailing window used to measure user activity",
    )
    high_activity_threshold: int = Field(
        default=10,
        ge=0,
        description="User requests in the monitoring window that count as high activity",
    )
    moderate_activity_threshold: int = Field(
        default=3,
        ge=0,
        description="User requests in the monitoring window that count as moderate activity",
    )
    recalculation_interval_ms: int = Field(
        default=30_000,
        gt=0,
        description="Minimum time between capacity recalculations",
    )
    sustained_inactivity_threshold_ms: int = Field(
        default=30 * 60 * 1000,
        gt=0,
        description="Gap since the last user request after which background gets everything",
    )
    background_pause_on_increasing_trend: bool = Field(
        default=True,
        description="Pause background traffic when high user activity is still growing",
    )
    max_user_scaling: float = Field(
        default=2.0,
        ge=1.0,
        description="Upper bound for the user capacity multiplier",
    )
    min_user_reserved: int = Field(
        default=5,
        ge=0,
        description="Requests always kept for users unless inactivity is sustained",
    )

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check_thresholds(self) -> "AdaptiveConfig":
        if self.moderate_activity_threshold >= self.high_activity_threshold:
            raise ValueError(
                "moderate_activity_threshold must be less than high_activity_threshold"
            )
        return self


AdaptiveConfigInput = Union[AdaptiveConfig, Mapping[str, Any], None]


def merge_adaptive_config(config: AdaptiveConfigInput = None) -> AdaptiveConfig:
    """
    Build an AdaptiveConfig from a model, a partial mapping or nothing.

    Raises:
        pydantic.ValidationError: when the merged values are invalid
    """
    if config is None:
        return AdaptiveConfig()
    if isinstance(config, AdaptiveConfig):
        return config
    return AdaptiveConfig(**dict(config))


class ResourceConfigRegistry:
    """
    Per-resource rate limit overrides on top of a store-wide default.
    """

    def __init__(
        self,
        default: Optional[RateLimitConfig] = None,
        overrides: Optional[Mapping[str, RateLimitConfig]] = None,
    ) -> None:
        self.default = replace(default or DEFAULT_RATE_LIMIT_CONFIG)
        self._configs: Dict[str, RateLimitConfig] = dict(overrides or {})

    def get(self, resource: str) -> RateLimitConfig:
        """Config for a resource, falling back to the default."""
        return self._configs.get(resource, self.default)

    def set(self, resource: str, config: RateLimitConfig) -> None:
        """Override the config for a resource."""
        if config.limit < 0 or config.window_ms <= 0:
            raise ValueError(
                f"Invalid rate limit for {resource}: limit must be >= 0 and window_ms > 0"
            )
        self._configs[resource] = config

    def max_window_ms(self) -> int:
        """Longest window across the default and every override."""
        windows = [c.window_ms for c in self._configs.values()]
        return max([self.default.window_ms, *windows])
