from __future__ import annotations

import math

from pydantic import BaseModel, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from structlog.stdlib import BoundLogger

from feedguard.circuit_breaker import CircuitBreakerConfig
from feedguard.logging import configure_structlog, get_log_level_value

DEFAULT_ENV_PREFIX = "FEEDGUARD_"


def prefixed_settings_config(prefix: str) -> SettingsConfigDict:
    """Build standard Pydantic settings config for prefixed environments."""
    return SettingsConfigDict(
        env_prefix=prefix,
        env_nested_delimiter="__",
        case_sensitive=False,
    )


class BreakerOverride(BaseModel):
    """Per-integration overrides applied on top of the breaker defaults."""

    failure_threshold: int | None = None
    cooldown_seconds: float | None = None
    cache_ttl_seconds: float | None = None


class BreakerSettings(BaseSettings):
    """Breaker defaults and per-integration tuning read from the environment.

    ``FEEDGUARD_OVERRIDES`` takes a JSON object keyed by breaker name, e.g.
    ``{"Wingbits Enrichment": {"failure_threshold": 5, "cooldown_seconds": 300}}``.
    """

    model_config = prefixed_settings_config(DEFAULT_ENV_PREFIX)

    failure_threshold: int = 3
    cooldown_seconds: float = 30.0
    cache_ttl_seconds: float = 0.0
    stale_ceiling_seconds: float = 86_400.0
    log_level: str = "INFO"
    overrides: dict[str, BreakerOverride] = {}

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: object) -> object:
        if not isinstance(value, str):
            return value
        get_log_level_value(value)
        return value.strip().upper()

    @model_validator(mode="after")
    def _validate_breaker_settings(self) -> BreakerSettings:
        for field_name in (
            "cooldown_seconds",
            "cache_ttl_seconds",
            "stale_ceiling_seconds",
        ):
            if not math.isfinite(getattr(self, field_name)):
                raise ValueError(f"{field_name} must be a finite number")
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        if self.cooldown_seconds < 0:
            raise ValueError("cooldown_seconds must be >= 0")
        if self.cache_ttl_seconds < 0:
            raise ValueError("cache_ttl_seconds must be >= 0")
        if self.stale_ceiling_seconds < 0:
            raise ValueError("stale_ceiling_seconds must be >= 0")

        for name, override in self.overrides.items():
            if not name.strip():
                raise ValueError("overrides keys must be non-empty breaker names")
            for field_name in ("cooldown_seconds", "cache_ttl_seconds"):
                value = getattr(override, field_name)
                if value is not None and not math.isfinite(value):
                    raise ValueError(
                        f"overrides[{name}].{field_name} must be a finite number"
                    )
            if (
                override.failure_threshold is not None
                and override.failure_threshold < 1
            ):
                raise ValueError(f"overrides[{name}].failure_threshold must be >= 1")
            if override.cooldown_seconds is not None and override.cooldown_seconds < 0:
                raise ValueError(f"overrides[{name}].cooldown_seconds must be >= 0")
            if (
                override.cache_ttl_seconds is not None
                and override.cache_ttl_seconds < 0
            ):
                raise ValueError(f"overrides[{name}].cache_ttl_seconds must be >= 0")
        return self

    def breaker_config(self, name: str) -> CircuitBreakerConfig:
        """Build the breaker configuration for integration ``name``."""
        override = self.overrides.get(name, BreakerOverride())
        failure_threshold = (
            self.failure_threshold
            if override.failure_threshold is None
            else override.failure_threshold
        )
        cooldown = (
            self.cooldown_seconds
            if override.cooldown_seconds is None
            else override.cooldown_seconds
        )
        cache_ttl = (
            self.cache_ttl_seconds
            if override.cache_ttl_seconds is None
            else override.cache_ttl_seconds
        )
        return CircuitBreakerConfig(
            failure_threshold=failure_threshold,
            cooldown=cooldown,
            cache_ttl=cache_ttl,
            stale_ceiling=self.stale_ceiling_seconds,
        )

    def configure_logging(self) -> BoundLogger:
        """Apply ``log_level`` to structlog and stdlib logging."""
        return configure_structlog(log_level=self.log_level)
