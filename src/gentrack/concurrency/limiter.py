"""Bounded-concurrency map over a homogeneous collection of jobs."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import TypeVar

from gentrack.concurrency.cancellation import CancellationToken
from gentrack.errors.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


async def map_with_concurrency(
    items: Iterable[T],
    worker: Callable[[T, int], Awaitable[R]],
    limit: int,
    token: CancellationToken | None = None,
) -> list[R]:
    """Run ``worker(item, index)`` for every item, at most ``limit`` at a time.

    Items start greedily in input order; results come back in input order
    regardless of completion order.

    If a worker raises, no further items start, the already-started ones are
    allowed to settle, and the first error is re-raised. A fired ``token``
    likewise stops new starts and raises ``Cancelled`` once in-flight work
    settles (only if some items were left unstarted).
    """
    if limit <= 0:
        raise ConfigurationError(f"Concurrency limit must be positive, got {limit}")

    pending = list(items)
    if not pending:
        return []

    results: list[R | None] = [None] * len(pending)
    next_index = 0
    first_error: Exception | None = None

    async def run_worker() -> None:
        nonlocal next_index, first_error
        while next_index < len(pending):
            if first_error is not None:
                return
            if token is not None and token.cancelled:
                return
            index = next_index
            next_index += 1
            try:
                results[index] = await worker(pending[index], index)
            except Exception as exc:
                if first_error is None:
                    first_error = exc
                else:
                    logger.debug("Suppressed later worker error for item %d: %s", index, exc)
                return

    await asyncio.gather(*(run_worker() for _ in range(min(limit, len(pending)))))

    if first_error is not None:
        raise first_error
    if token is not None and token.cancelled and next_index < len(pending):
        logger.info(
            "Cancelled with %d of %d items not started", len(pending) - next_index, len(pending)
        )
        raise token.error()

    return results  # type: ignore[return-value]


class ConcurrencyLimiter:
    """Reusable limiter that also records in-flight and peak concurrency."""

    def __init__(self, limit: int) -> None:
        if limit <= 0:
            raise ConfigurationError(f"Concurrency limit must be positive, got {limit}")
        self._limit = limit
        self._in_flight = 0
        self._peak = 0

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def peak(self) -> int:
        return self._peak

    async def map(
        self,
        items: Iterable[T],
        worker: Callable[[T, int], Awaitable[R]],
        token: CancellationToken | None = None,
    ) -> list[R]:
        async def tracked(item: T, index: int) -> R:
            self._in_flight += 1
            self._peak = max(self._peak, self._in_flight)
            try:
                return await worker(item, index)
            finally:
                self._in_flight -= 1

        return await map_with_concurrency(items, tracked, self._limit, token)
