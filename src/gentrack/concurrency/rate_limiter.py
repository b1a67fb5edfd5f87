"""Token-bucket rate limiter gating every call to the remote service."""

from __future__ import annotations

import functools
import logging
import time
from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

from pydantic import BaseModel

from gentrack.concurrency.cancellation import CancellationToken, Sleeper, cancellable_sleep
from gentrack.errors.exceptions import ConfigurationError, RateLimitExceeded

logger = logging.getLogger(__name__)

P = ParamSpec("P")
R = TypeVar("R")

_MIN_WAIT = 0.001  # seconds


class RateLimiterState(BaseModel):
    tokens: float
    last_refill_time: float
    capacity: int
    refill_rate_per_second: float


class RateLimiter:
    """Token bucket: bursts up to ``capacity``, then ``refill_rate`` tokens per second.

    The bucket starts full. Refill, check and decrement happen without an
    intervening suspension point, so under one event loop no lock is needed.
    A multi-threaded caller must serialize ``acquire`` externally.
    """

    def __init__(
        self,
        capacity: int = 10,
        refill_rate: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Sleeper = cancellable_sleep,
    ) -> None:
        if capacity <= 0:
            raise ConfigurationError("Rate limiter capacity must be positive")
        if refill_rate <= 0:
            raise ConfigurationError("Rate limiter refill rate must be positive")

        self._capacity = capacity
        self._refill_rate = float(refill_rate)
        self._clock = clock
        self._sleep = sleep

        self._tokens = float(capacity)
        self._last_refill = clock()

        # Stats
        self._total_requests = 0
        self._total_waits = 0
        self._total_wait_seconds = 0.0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def refill_rate(self) -> float:
        return self._refill_rate

    async def acquire(self, token: CancellationToken | None = None) -> float:
        """Wait until one token is available, then take it.

        Returns the time spent waiting (seconds). Raises ``Cancelled`` if
        ``token`` fires while waiting; no token is consumed in that case.
        """
        waited = 0.0

        while True:
            if token is not None:
                token.raise_if_cancelled()

            if self._take():
                if waited > 0:
                    self._total_waits += 1
                    self._total_wait_seconds += waited
                return waited

            wait_time = max((1 - self._tokens) / self._refill_rate, _MIN_WAIT)
            logger.debug("Rate limit reached, waiting %.3fs for next token", wait_time)
            await self._sleep(wait_time, token)
            waited += wait_time

    def try_acquire(self) -> bool:
        """Take a token if one is available, without waiting."""
        return self._take()

    def acquire_or_raise(self) -> None:
        """Take a token or raise ``RateLimitExceeded`` with the retry delay."""
        if not self._take():
            raise RateLimitExceeded(
                "Rate limit exceeded. Please wait before making more requests.",
                retry_after=self.time_until_next_token(),
            )

    @property
    def available_tokens(self) -> int:
        self._refill()
        return int(self._tokens)

    def time_until_next_token(self) -> float:
        """Seconds until at least one token is available."""
        self._refill()
        if self._tokens >= 1:
            return 0.0
        return (1 - self._tokens) / self._refill_rate

    @property
    def state(self) -> RateLimiterState:
        self._refill()
        return RateLimiterState(
            tokens=self._tokens,
            last_refill_time=self._last_refill,
            capacity=self._capacity,
            refill_rate_per_second=self._refill_rate,
        )

    @property
    def stats(self) -> dict:
        """Return current rate limiter statistics."""
        self._refill()
        return {
            "tokens_available": self._tokens,
            "total_requests": self._total_requests,
            "total_waits": self._total_waits,
            "total_wait_seconds": self._total_wait_seconds,
        }

    def reset(self) -> None:
        """Refill to capacity and clear stats."""
        self._tokens = float(self._capacity)
        self._last_refill = self._clock()
        self._total_requests = 0
        self._total_waits = 0
        self._total_wait_seconds = 0.0

    def _take(self) -> bool:
        self._refill()
        if self._tokens >= 1:
            self._tokens -= 1
            self._total_requests += 1
            return True
        return False

    def _refill(self) -> None:
        """Refill bucket based on elapsed time."""
        now = self._clock()
        elapsed = now - self._last_refill
        if elapsed <= 0:
            return
        self._last_refill = now
        self._tokens = min(float(self._capacity), self._tokens + elapsed * self._refill_rate)


def rate_limited(
    limiter: RateLimiter,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """Decorate an async function so each call first waits for a token."""

    def decorator(fn: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @functools.wraps(fn)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            await limiter.acquire()
            return await fn(*args, **kwargs)

        return wrapper

    return decorator
