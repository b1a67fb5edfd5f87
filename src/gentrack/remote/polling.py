"""Completion tracking for long-running remote jobs.

Submitted -> Polling -> {Success, Failed, TimedOut, Cancelled}. Each status
query goes through the client (and so through the shared rate limiter);
between queries the engine waits with a 1.5x multiplicative backoff capped
at ``max_interval_ms``. The caller only ever sees a terminal outcome or one
taxonomy error, never a "still processing" result.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, Field

from gentrack.concurrency.cancellation import CancellationToken, Sleeper, cancellable_sleep
from gentrack.config.defaults import (
    DEFAULT_POLL_INTERVAL_MS,
    DEFAULT_POLL_MAX_ATTEMPTS,
    MAX_POLL_INTERVAL_MS,
)
from gentrack.errors.exceptions import GenerationFailed, PollTimeout, TransientNetworkError
from gentrack.errors.retry import RetryPolicy, next_poll_interval
from gentrack.progress import ProgressReporter, report_progress
from gentrack.remote.client import JobClient
from gentrack.types import JobHandle, JobStatus, PollOutcome

logger = logging.getLogger(__name__)


class PollOptions(BaseModel):
    max_attempts: int = Field(default=DEFAULT_POLL_MAX_ATTEMPTS, ge=1)
    initial_interval_ms: float = Field(default=DEFAULT_POLL_INTERVAL_MS, gt=0)
    max_interval_ms: float = Field(default=MAX_POLL_INTERVAL_MS, gt=0)
    # Per status-query timeout (seconds); None uses the client's default
    request_timeout: float | None = None


async def poll_for_result(
    handle: JobHandle,
    client: JobClient,
    options: PollOptions | None = None,
    progress: ProgressReporter | None = None,
    token: CancellationToken | None = None,
    sleep: Sleeper = cancellable_sleep,
    clock: Callable[[], float] = time.monotonic,
) -> PollOutcome:
    """Poll ``handle`` until it succeeds, fails, runs out of attempts or is cancelled.

    Raises:
        Cancelled: token fired before the first query or during a wait.
        GenerationFailed: the remote job reported its error state.
        PollTimeout: still processing after ``max_attempts`` queries.
    """
    options = options or PollOptions()
    if token is not None:
        token.raise_if_cancelled()

    start = clock()
    interval = options.initial_interval_ms
    last_transient: TransientNetworkError | None = None

    for attempt in range(1, options.max_attempts + 1):
        response = None
        try:
            response = await client.get_status(
                handle, token=token, timeout=options.request_timeout
            )
        except TransientNetworkError as e:
            # A failed query only costs this attempt, not the whole poll
            logger.warning(
                "Status query for %s failed (attempt %d/%d): %s",
                handle,
                attempt,
                options.max_attempts,
                e,
            )
            last_transient = e

        report_progress(
            progress,
            attempt,
            options.max_attempts,
            f"Polling for result (attempt {attempt}/{options.max_attempts})",
        )

        if response is not None:
            if response.status == JobStatus.SUCCESS:
                elapsed_ms = (clock() - start) * 1000
                logger.debug("Task %s succeeded after %d attempts", handle, attempt)
                return PollOutcome(
                    status=JobStatus.SUCCESS,
                    payload=response.payload,
                    attempts=attempt,
                    elapsed_ms=elapsed_ms,
                )
            if response.status == JobStatus.ERROR:
                raise GenerationFailed(
                    _failure_message(response.payload),
                    handle=handle,
                    payload=response.payload,
                )
            logger.debug("Task %s still processing (attempt %d)", handle, attempt)

        if attempt == options.max_attempts:
            break

        await sleep(interval / 1000, token)
        interval = next_poll_interval(interval, options.max_interval_ms)

    raise PollTimeout(
        f"Polling timed out after {options.max_attempts} attempts",
        handle=handle,
        attempts=options.max_attempts,
        elapsed_ms=(clock() - start) * 1000,
    ) from last_transient


async def submit_and_poll(
    client: JobClient,
    task: dict[str, Any],
    options: PollOptions | None = None,
    progress: ProgressReporter | None = None,
    token: CancellationToken | None = None,
    retry_policy: RetryPolicy | None = None,
    sleep: Sleeper = cancellable_sleep,
) -> PollOutcome:
    """Submit ``task`` (retrying transient failures if a policy is given), then poll it."""
    options = options or PollOptions()

    async def submit() -> JobHandle:
        return await client.submit(task, token=token, timeout=options.request_timeout)

    if retry_policy is not None:
        handle = await retry_policy.run(submit, token=token, sleep=sleep)
    else:
        handle = await submit()

    return await poll_for_result(handle, client, options, progress=progress, token=token, sleep=sleep)


def estimate_max_poll_time(
    max_attempts: int = DEFAULT_POLL_MAX_ATTEMPTS,
    initial_interval_ms: float = DEFAULT_POLL_INTERVAL_MS,
    max_interval_ms: float = MAX_POLL_INTERVAL_MS,
) -> float:
    """Sum of the capped backoff series, in ms. For user-facing estimates only."""
    total = 0.0
    interval = initial_interval_ms
    for _ in range(max_attempts):
        total += interval
        interval = next_poll_interval(interval, max_interval_ms)
    return total


def _failure_message(payload: dict[str, Any]) -> str:
    reason = payload.get("message") or payload.get("error")
    if reason:
        return f"Task failed during processing: {reason}"
    return "Task failed during processing"
