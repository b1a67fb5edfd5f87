"""Fire-and-forget progress reporting for long-running operations."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class ProgressInfo(BaseModel):
    completed: int
    total: int
    message: str = ""


@runtime_checkable
class ProgressReporter(Protocol):
    def report(self, info: ProgressInfo) -> None: ...


class CallbackProgressReporter:
    """Maps progress onto a notification callback keyed by request id."""

    def __init__(self, send: Callable[[dict[str, Any]], None], request_id: str) -> None:
        self._send = send
        self._request_id = request_id

    def report(self, info: ProgressInfo) -> None:
        self._send({
            "progressToken": self._request_id,
            "progress": info.completed,
            "total": info.total,
            "message": info.message,
        })


class LoggingProgressReporter:
    def __init__(self, name: str = "gentrack.progress") -> None:
        self._logger = logging.getLogger(name)

    def report(self, info: ProgressInfo) -> None:
        self._logger.info("[%d/%d] %s", info.completed, info.total, info.message)


def report_progress(
    reporter: ProgressReporter | None,
    completed: int,
    total: int,
    message: str = "",
) -> None:
    """Deliver one progress update; no reporter means nothing happens.

    Delivery is best effort: a failing reporter is logged, never propagated.
    """
    if reporter is None:
        return
    try:
        reporter.report(ProgressInfo(completed=completed, total=total, message=message))
    except Exception as e:
        logger.debug("Progress reporter failed: %s", e)
