"""Pydantic model for process-start settings, validated once."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError

from gentrack.config import defaults
from gentrack.config.hierarchy import load_config_hierarchy
from gentrack.errors.exceptions import ConfigurationError

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]


class Settings(BaseModel):
    api_key: str | None = Field(default=None, min_length=32)
    api_base_url: str = defaults.DEFAULT_API_BASE_URL
    request_timeout: float = Field(default=defaults.DEFAULT_REQUEST_TIMEOUT, ge=1, le=300)

    poll_max_attempts: int = Field(default=defaults.DEFAULT_POLL_MAX_ATTEMPTS, ge=10, le=500)
    poll_initial_interval_ms: int = Field(default=defaults.DEFAULT_POLL_INTERVAL_MS, ge=1)
    poll_max_interval_ms: int = Field(default=defaults.MAX_POLL_INTERVAL_MS, ge=1)

    rate_limit_capacity: int = Field(default=defaults.DEFAULT_RATE_LIMIT_CAPACITY, ge=1, le=100)
    rate_limit_refill_rate: float = Field(
        default=defaults.DEFAULT_RATE_LIMIT_REFILL_RATE, ge=0.1, le=10
    )

    watch_debounce_ms: int = Field(default=defaults.DEFAULT_WATCH_DEBOUNCE_MS, ge=100, le=5000)
    max_concurrency: int = Field(default=defaults.DEFAULT_MAX_CONCURRENCY, ge=1, le=5)

    log_level: LogLevel = "WARNING"

    model_config = {"extra": "ignore"}


def load_settings(**overrides: Any) -> Settings:
    """Resolve the config hierarchy and validate it.

    Raises ConfigurationError listing every invalid key.
    """
    raw = load_config_hierarchy(**overrides)
    if isinstance(raw.get("log_level"), str):
        raw["log_level"] = raw["log_level"].upper()

    try:
        settings = Settings(**raw)
    except ValidationError as e:
        problems = [
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        ]
        raise ConfigurationError(
            "Configuration validation failed:\n" + "\n".join(f"  - {p}" for p in problems),
            errors=problems,
        ) from e

    if settings.poll_max_interval_ms < settings.poll_initial_interval_ms:
        raise ConfigurationError(
            "poll_max_interval_ms must not be smaller than poll_initial_interval_ms",
            errors=["poll_max_interval_ms: smaller than poll_initial_interval_ms"],
        )
    return settings
