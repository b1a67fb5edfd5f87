"""Shared Pydantic models for gentrack."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

# Opaque id correlating a submitted remote job with later status queries
JobHandle = str

# ── Enums ──


class JobStatus(StrEnum):
    SUCCESS = "success"
    ERROR = "error"
    PROCESSING = "processing"


class FileStatus(StrEnum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


# ── Remote job models ──


class StatusResponse(BaseModel):
    status: JobStatus
    payload: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.status != JobStatus.PROCESSING


class PollOutcome(BaseModel):
    """Produced once when polling reaches a terminal success."""

    status: JobStatus
    payload: dict[str, Any] = Field(default_factory=dict)
    attempts: int
    elapsed_ms: float


# ── Batch models ──


class FileResult(BaseModel):
    input_path: str
    status: FileStatus
    output_path: str | None = None
    error: str | None = None
    error_kind: str | None = None
    payload: dict[str, Any] | None = None
    attempts: int = 0


class BatchSummary(BaseModel):
    total: int = 0
    results: list[FileResult] = Field(default_factory=list)

    @property
    def processed(self) -> int:
        return sum(1 for r in self.results if r.status == FileStatus.SUCCESS)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.status == FileStatus.FAILED)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.results if r.status == FileStatus.SKIPPED)

    @property
    def message(self) -> str:
        if self.total == 0:
            return "No files to process"
        if self.failed:
            return (
                f"Processed {self.processed}/{self.total} files with {self.failed} failures"
            )
        return f"Successfully processed {self.processed}/{self.total} files"


# ── Watch models ──


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WatchEntry(BaseModel):
    """One directory watch. Lives only in process memory."""

    id: str
    path: str
    operation: str
    operation_params: dict[str, Any] = Field(default_factory=dict)
    output_folder: str | None = None
    stop_on_error: bool = False
    active: bool = True
    last_scan_time: datetime | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    scan_count: int = 0
    processed_count: int = 0
    failed_count: int = 0
