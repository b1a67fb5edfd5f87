"""Cancellation tokens and cancellation-aware waiting.

One token type is threaded by reference through the rate limiter, the retry
runner, the polling engine and the concurrency limiter. Once fired, every
suspended wait observing it raises ``Cancelled`` and no new waits are entered.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any, TypeVar

from gentrack.errors.exceptions import Cancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")

# (seconds, token) -> awaitable; injectable so tests can run on a virtual clock
Sleeper = Callable[[float, "CancellationToken | None"], Awaitable[None]]


class CancellationToken:
    """Explicit, by-reference cancellation context."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason = ""

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def cancel(self, reason: str = "") -> None:
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()

    def error(self) -> Cancelled:
        message = "Operation was cancelled"
        if self._reason:
            message = f"{message}: {self._reason}"
        return Cancelled(message, reason=self._reason)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise self.error()

    async def wait(self) -> None:
        await self._event.wait()


async def cancellable_sleep(seconds: float, token: CancellationToken | None = None) -> None:
    """Sleep for ``seconds``, raising ``Cancelled`` as soon as ``token`` fires."""
    if token is None:
        await asyncio.sleep(max(seconds, 0.0))
        return

    token.raise_if_cancelled()
    try:
        await asyncio.wait_for(token.wait(), timeout=max(seconds, 0.0))
    except asyncio.TimeoutError:
        return
    raise token.error()


async def run_cancellable(
    coro: Coroutine[Any, Any, T],
    token: CancellationToken | None = None,
) -> T:
    """Await ``coro``, aborting it if ``token`` fires first."""
    if token is None:
        return await coro
    if token.cancelled:
        coro.close()
        raise token.error()

    task = asyncio.ensure_future(coro)
    waiter = asyncio.ensure_future(token.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
        if not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    if task.cancelled():
        raise token.error()
    return task.result()


class OperationRegistry:
    """Tracks cancellation tokens of in-flight operations by request id."""

    def __init__(self) -> None:
        self._active: dict[str, CancellationToken] = {}

    def create(self, request_id: str) -> CancellationToken:
        token = CancellationToken()
        self._active[request_id] = token
        return token

    def cancel(self, request_id: str, reason: str = "") -> bool:
        """Fire and forget the token for ``request_id``. False if unknown."""
        token = self._active.pop(request_id, None)
        if token is None:
            return False
        token.cancel(reason or f"request {request_id} cancelled")
        logger.info("Cancelled operation %s", request_id)
        return True

    def complete(self, request_id: str) -> None:
        self._active.pop(request_id, None)

    @property
    def active_count(self) -> int:
        return len(self._active)

    def cancel_all(self, reason: str = "shutdown") -> int:
        ids = list(self._active)
        for request_id in ids:
            self.cancel(request_id, reason)
        return len(ids)
