"""Async HTTP client for the remote generation service."""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING, Any, Protocol

import httpx

from gentrack.concurrency.cancellation import CancellationToken, run_cancellable
from gentrack.config.defaults import DEFAULT_API_BASE_URL, DEFAULT_REQUEST_TIMEOUT
from gentrack.errors.exceptions import RemoteApiError, TransientNetworkError
from gentrack.types import JobHandle, JobStatus, StatusResponse

if TYPE_CHECKING:
    from gentrack.concurrency.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

# HTTP statuses worth retrying
_TRANSIENT_STATUSES = {408, 429, 500, 502, 503, 504}


class JobClient(Protocol):
    """What the polling engine needs from a remote client."""

    async def submit(
        self,
        task: dict[str, Any],
        token: CancellationToken | None = None,
        timeout: float | None = None,
    ) -> JobHandle: ...

    async def get_status(
        self,
        handle: JobHandle,
        token: CancellationToken | None = None,
        timeout: float | None = None,
    ) -> StatusResponse: ...


def create_task(task_type: str, **params: Any) -> dict[str, Any]:
    """Build a task request with a freshly generated taskUUID."""
    return {"taskType": task_type, "taskUUID": str(uuid.uuid4()), **params}


class GenerationClient:
    """Sends task batches to the remote service over HTTPS.

    Every outbound call first takes a token from the shared rate limiter (if
    one is given) and carries its own timeout. Timeouts, connection failures,
    429 and 5xx responses surface as TransientNetworkError.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_API_BASE_URL,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        rate_limiter: RateLimiter | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url
        self._timeout = timeout
        self._rate_limiter = rate_limiter
        self._client = httpx.AsyncClient(
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    async def request(
        self,
        tasks: list[dict[str, Any]],
        token: CancellationToken | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Send tasks and return the decoded body, raising on API-level errors."""
        body = await self._send(tasks, token, timeout)
        errors = body.get("errors") or []
        if errors:
            raise _api_level_error(errors[0])
        return body

    async def submit(
        self,
        task: dict[str, Any],
        token: CancellationToken | None = None,
        timeout: float | None = None,
    ) -> JobHandle:
        """Submit one task; the returned handle is its taskUUID."""
        if not task.get("taskUUID"):
            task = {**task, "taskUUID": str(uuid.uuid4())}
        # Async tasks may come back with empty data on submission
        await self.request([task], token=token, timeout=timeout)
        logger.debug("Submitted %s task %s", task.get("taskType"), task["taskUUID"])
        return task["taskUUID"]

    async def get_status(
        self,
        handle: JobHandle,
        token: CancellationToken | None = None,
        timeout: float | None = None,
    ) -> StatusResponse:
        """Query the current status of a submitted task."""
        body = await self._send(
            [{"taskType": "getResponse", "taskUUID": handle}], token, timeout
        )

        errors = body.get("errors") or []
        for error in errors:
            if error.get("taskUUID") == handle:
                return StatusResponse(status=JobStatus.ERROR, payload=dict(error))
        if errors:
            raise _api_level_error(errors[0])

        data = body.get("data") or []
        matching = [item for item in data if item.get("taskUUID") == handle] or data
        if not matching:
            raise RemoteApiError("API returned no results", handle=handle)

        item = dict(matching[-1])
        raw_status = item.get("status", JobStatus.PROCESSING.value)
        try:
            status = JobStatus(raw_status)
        except ValueError:
            logger.debug("Unknown status '%s' for %s, treating as processing", raw_status, handle)
            status = JobStatus.PROCESSING
        return StatusResponse(status=status, payload=item)

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> GenerationClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def _send(
        self,
        tasks: list[dict[str, Any]],
        token: CancellationToken | None,
        timeout: float | None,
    ) -> dict[str, Any]:
        if self._rate_limiter:
            await self._rate_limiter.acquire(token)
        # The token also aborts the in-flight HTTP request
        return await run_cancellable(self._post(tasks, timeout), token)

    async def _post(self, tasks: list[dict[str, Any]], timeout: float | None) -> dict[str, Any]:
        effective_timeout = timeout if timeout is not None else self._timeout
        try:
            response = await self._client.post(
                self._base_url, json=tasks, timeout=effective_timeout
            )
        except httpx.TimeoutException as e:
            raise TransientNetworkError(
                f"Request timed out after {effective_timeout}s",
                error_type="timeout",
                original=e,
            ) from e
        except httpx.TransportError as e:
            raise TransientNetworkError(
                f"Network error: {e}",
                error_type="connection",
                original=e,
            ) from e

        if response.status_code in _TRANSIENT_STATUSES:
            raise TransientNetworkError(
                f"API request failed: {response.status_code} {response.reason_phrase}",
                error_type="rate_limit" if response.status_code == 429 else "server_error",
                http_status=response.status_code,
            )
        if response.is_error:
            raise RemoteApiError(
                f"API request failed: {response.status_code} {response.reason_phrase}",
                http_status=response.status_code,
                api_code=response.text[:200] or None,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise RemoteApiError("API returned invalid JSON", http_status=response.status_code) from e
        if not isinstance(body, dict):
            raise RemoteApiError("API returned an unexpected response shape")
        return body


def _api_level_error(error: dict[str, Any]) -> RemoteApiError:
    return RemoteApiError(
        error.get("message", "Unknown API error"),
        api_code=error.get("code"),
        handle=error.get("taskUUID"),
    )
