"""Retry engine and backoff schedule shared by retries and polling."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from pydantic import BaseModel
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt

from gentrack.concurrency.cancellation import CancellationToken, Sleeper, cancellable_sleep
from gentrack.errors.exceptions import Cancelled, ConfigurationError, TransientNetworkError

logger = logging.getLogger(__name__)

T = TypeVar("T")

POLL_BACKOFF_FACTOR = 1.5

OnRetry = Callable[[BaseException, int, float], None]


def compute_delay(
    attempt: int,
    initial_delay: float = 1.0,
    multiplier: float = 2.0,
    max_delay: float | None = None,
) -> float:
    """Delay after failed attempt ``attempt`` (1-based): initial * multiplier^(attempt-1)."""
    if attempt < 1:
        raise ConfigurationError(f"Attempt numbers start at 1, got {attempt}")
    delay = initial_delay * multiplier ** (attempt - 1)
    if max_delay is not None:
        delay = min(delay, max_delay)
    return delay


def next_poll_interval(
    interval_ms: float,
    max_interval_ms: float,
    factor: float = POLL_BACKOFF_FACTOR,
) -> float:
    """Grow a poll interval by ``factor``, capped at ``max_interval_ms``."""
    return min(interval_ms * factor, max_interval_ms)


def is_transient(error: BaseException) -> bool:
    return isinstance(error, TransientNetworkError)


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    backoff_multiplier: float = 2.0,
    max_delay: float | None = None,
    is_retryable: Callable[[BaseException], bool] | None = None,
    on_retry: OnRetry | None = None,
    token: CancellationToken | None = None,
    sleep: Sleeper = cancellable_sleep,
) -> T:
    """Invoke ``operation`` until it succeeds or retrying is no longer allowed.

    A failure is retried only while attempts remain, ``is_retryable(error)``
    holds and ``token`` has not fired. Before each wait ``on_retry(error,
    attempt, delay)`` is called. Otherwise the last error propagates unchanged.
    ``Cancelled`` is never retried, and a token fired before the first attempt
    raises without calling ``operation``.
    """
    if max_attempts < 1:
        raise ConfigurationError(f"max_attempts must be at least 1, got {max_attempts}")
    if token is not None:
        token.raise_if_cancelled()

    def should_retry(error: BaseException) -> bool:
        if isinstance(error, Cancelled) or not isinstance(error, Exception):
            return False
        if token is not None and token.cancelled:
            return False
        return is_retryable is None or is_retryable(error)

    def before_sleep(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            "Attempt %d/%d failed: %s. Retrying in %.2fs",
            retry_state.attempt_number,
            max_attempts,
            error,
            delay,
        )
        if on_retry is not None and error is not None:
            on_retry(error, retry_state.attempt_number, delay)

    async def wait_then_check(seconds: float) -> None:
        await sleep(seconds, token)

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=lambda rs: compute_delay(
            rs.attempt_number, initial_delay, backoff_multiplier, max_delay
        ),
        retry=retry_if_exception(should_retry),
        before_sleep=before_sleep,
        sleep=wait_then_check,
        reraise=True,
    )
    return await retrying(operation)


class RetryPolicy(BaseModel):
    """Retry knobs for composing remote calls with ``retry_async``."""

    max_attempts: int = 3
    initial_delay: float = 1.0
    backoff_multiplier: float = 2.0
    max_delay: float | None = 30.0
    transient_only: bool = True

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        token: CancellationToken | None = None,
        on_retry: OnRetry | None = None,
        sleep: Sleeper = cancellable_sleep,
    ) -> T:
        return await retry_async(
            operation,
            max_attempts=self.max_attempts,
            initial_delay=self.initial_delay,
            backoff_multiplier=self.backoff_multiplier,
            max_delay=self.max_delay,
            is_retryable=is_transient if self.transient_only else None,
            on_retry=on_retry,
            token=token,
            sleep=sleep,
        )
