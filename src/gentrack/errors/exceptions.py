"""Custom exception hierarchy for gentrack."""

from __future__ import annotations

from typing import Any


class GenTrackError(Exception):
    """Base exception for all gentrack errors.

    Every error carries a human-readable ``message`` and a machine-checkable
    ``kind``. ``to_dict()`` gives the structured form handed to outer layers.
    """

    kind = "internal"

    def __init__(self, message: str = "", **kwargs: Any) -> None:
        super().__init__(message)
        self.message = message

    @property
    def data(self) -> dict[str, Any]:
        return {}

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"kind": self.kind, "message": self.message}
        data = {k: v for k, v in self.data.items() if v is not None}
        if data:
            result["data"] = data
        return result


class Cancelled(GenTrackError):
    """Caller or token-driven abandonment. Never retried."""

    kind = "cancelled"

    def __init__(self, message: str = "Operation was cancelled", reason: str = "") -> None:
        super().__init__(message)
        self.reason = reason

    @property
    def data(self) -> dict[str, Any]:
        return {"reason": self.reason or None}


class PollTimeout(GenTrackError):
    """Attempts exhausted while the remote job was still processing.

    Distinct from a failure: the job may still complete later.
    """

    kind = "poll_timeout"

    def __init__(
        self,
        message: str = "",
        handle: str = "",
        attempts: int = 0,
        elapsed_ms: float = 0.0,
    ) -> None:
        super().__init__(message)
        self.handle = handle
        self.attempts = attempts
        self.elapsed_ms = elapsed_ms

    @property
    def data(self) -> dict[str, Any]:
        return {
            "handle": self.handle,
            "attempts": self.attempts,
            "elapsed_ms": round(self.elapsed_ms),
        }


class GenerationFailed(GenTrackError):
    """The remote job reached its terminal error state."""

    kind = "generation_failed"

    def __init__(
        self,
        message: str = "",
        handle: str = "",
        payload: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.handle = handle
        self.payload = payload or {}

    @property
    def data(self) -> dict[str, Any]:
        return {"handle": self.handle, "payload": self.payload or None}


class TransientNetworkError(GenTrackError):
    """Timeout, connection failure or overloaded server. Safe to retry.

    Examples: 429 rate limit, 500/502/503 server error, timeout, connection error.
    """

    kind = "transient_network"

    def __init__(
        self,
        message: str = "",
        error_type: str = "connection",
        http_status: int | None = None,
        original: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.error_type = error_type
        self.http_status = http_status
        self.original = original

    @property
    def data(self) -> dict[str, Any]:
        return {"error_type": self.error_type, "http_status": self.http_status}


class ConfigurationError(GenTrackError):
    """Invalid limiter, concurrency or settings arguments. Raised before work starts."""

    kind = "configuration"

    def __init__(self, message: str = "", errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []

    @property
    def data(self) -> dict[str, Any]:
        return {"errors": self.errors or None}


class RemoteApiError(GenTrackError):
    """Non-retryable error reported by the remote service."""

    kind = "remote_api"

    def __init__(
        self,
        message: str = "",
        http_status: int | None = None,
        api_code: str | None = None,
        handle: str | None = None,
    ) -> None:
        super().__init__(message)
        self.http_status = http_status
        self.api_code = api_code
        self.handle = handle

    @property
    def data(self) -> dict[str, Any]:
        return {
            "http_status": self.http_status,
            "api_code": self.api_code,
            "handle": self.handle,
        }


class RateLimitExceeded(GenTrackError):
    """No rate-limit token available for a non-waiting acquisition."""

    kind = "rate_limited"

    def __init__(self, message: str = "", retry_after: float = 0.0) -> None:
        super().__init__(message)
        self.retry_after = retry_after

    @property
    def data(self) -> dict[str, Any]:
        return {"retry_after": self.retry_after}


class FolderNotFound(GenTrackError):
    kind = "folder_not_found"

    def __init__(self, message: str = "", path: str = "") -> None:
        super().__init__(message)
        self.path = path

    @property
    def data(self) -> dict[str, Any]:
        return {"path": self.path}


class WatchNotFound(GenTrackError):
    kind = "watch_not_found"

    def __init__(self, watch_id: str) -> None:
        super().__init__(f"Watch not found: {watch_id}")
        self.watch_id = watch_id

    @property
    def data(self) -> dict[str, Any]:
        return {"watch_id": self.watch_id}


class AlreadyWatching(GenTrackError):
    """A second watch was requested for a path that is actively watched."""

    kind = "already_watching"

    def __init__(self, path: str, watch_id: str) -> None:
        super().__init__(f"Already watching folder: {path}")
        self.path = path
        self.watch_id = watch_id

    @property
    def data(self) -> dict[str, Any]:
        return {"path": self.path, "watch_id": self.watch_id}


class BatchStopped(GenTrackError):
    """A batch configured with stop-on-error hit its first failed item."""

    kind = "batch_stopped"

    def __init__(self, message: str = "", path: str = "", cause: str = "") -> None:
        super().__init__(message)
        self.path = path
        self.cause = cause

    @property
    def data(self) -> dict[str, Any]:
        return {"path": self.path, "cause": self.cause}


def wrap_error(exc: BaseException) -> GenTrackError:
    """Return ``exc`` unchanged if it is ours, otherwise wrap it as a RemoteApiError."""
    if isinstance(exc, GenTrackError):
        return exc
    return RemoteApiError(str(exc) or type(exc).__name__)
