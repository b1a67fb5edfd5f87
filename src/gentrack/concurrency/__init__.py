"""Concurrency: cancellation, rate limiting and bounded parallel execution."""

from gentrack.concurrency.cancellation import (
    CancellationToken,
    OperationRegistry,
    cancellable_sleep,
    run_cancellable,
)
from gentrack.concurrency.limiter import ConcurrencyLimiter, map_with_concurrency
from gentrack.concurrency.rate_limiter import RateLimiter, RateLimiterState, rate_limited

__all__ = [
    "CancellationToken",
    "OperationRegistry",
    "cancellable_sleep",
    "run_cancellable",
    "ConcurrencyLimiter",
    "map_with_concurrency",
    "RateLimiter",
    "RateLimiterState",
    "rate_limited",
]
