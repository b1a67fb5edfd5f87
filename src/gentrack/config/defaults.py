"""Package-level default configuration values."""

from __future__ import annotations

from typing import Any

# Remote service
DEFAULT_API_BASE_URL = "https://api.runware.ai/v1"
DEFAULT_REQUEST_TIMEOUT = 60.0  # seconds, per outbound call

# Polling
DEFAULT_POLL_MAX_ATTEMPTS = 150
DEFAULT_POLL_INTERVAL_MS = 2000
MAX_POLL_INTERVAL_MS = 10_000

# Rate limiting
DEFAULT_RATE_LIMIT_CAPACITY = 10
DEFAULT_RATE_LIMIT_REFILL_RATE = 1.0  # tokens per second

# Watching and batch processing
DEFAULT_WATCH_DEBOUNCE_MS = 500
DEFAULT_MAX_CONCURRENCY = 2

# Log level
DEFAULT_LOG_LEVEL = "WARNING"


def get_defaults() -> dict[str, Any]:
    """Return all defaults as a flat dictionary for merging."""
    return {
        "api_base_url": DEFAULT_API_BASE_URL,
        "request_timeout": DEFAULT_REQUEST_TIMEOUT,
        "poll_max_attempts": DEFAULT_POLL_MAX_ATTEMPTS,
        "poll_initial_interval_ms": DEFAULT_POLL_INTERVAL_MS,
        "poll_max_interval_ms": MAX_POLL_INTERVAL_MS,
        "rate_limit_capacity": DEFAULT_RATE_LIMIT_CAPACITY,
        "rate_limit_refill_rate": DEFAULT_RATE_LIMIT_REFILL_RATE,
        "watch_debounce_ms": DEFAULT_WATCH_DEBOUNCE_MS,
        "max_concurrency": DEFAULT_MAX_CONCURRENCY,
        "log_level": DEFAULT_LOG_LEVEL,
    }
