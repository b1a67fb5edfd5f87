"""Bounded-concurrency batch processing of folder files through the remote service."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any

from gentrack.concurrency.cancellation import CancellationToken
from gentrack.concurrency.limiter import ConcurrencyLimiter
from gentrack.config.defaults import DEFAULT_MAX_CONCURRENCY
from gentrack.errors.exceptions import BatchStopped, Cancelled, wrap_error
from gentrack.pipeline.folders import get_images_in_folder, validate_folder
from gentrack.pipeline.operations import (
    FolderOperation,
    build_operation_task,
    output_path_for,
    parse_operation,
)
from gentrack.progress import ProgressReporter, report_progress
from gentrack.remote.polling import PollOptions, submit_and_poll
from gentrack.types import BatchSummary, FileResult, FileStatus

if TYPE_CHECKING:
    from gentrack.errors.retry import RetryPolicy
    from gentrack.remote.client import JobClient

logger = logging.getLogger(__name__)

DEFAULT_MAX_FILES = 100


class BatchProcessor:
    """Runs one operation over many files, a bounded number at a time.

    Each file is submitted and polled to completion independently. A file
    that fails becomes a ``failed`` result instead of aborting the batch,
    unless ``stop_on_error`` is requested.
    """

    def __init__(
        self,
        client: JobClient,
        poll_options: PollOptions | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self._client = client
        self._poll_options = poll_options or PollOptions()
        self._retry_policy = retry_policy

    async def process_file(
        self,
        path: str | Path,
        operation: FolderOperation | str,
        params: dict[str, Any] | None = None,
        output_folder: str | Path | None = None,
        output_suffix: str = "",
        token: CancellationToken | None = None,
    ) -> FileResult:
        """Process one file. Only ``Cancelled`` escapes; other errors become a failed result."""
        path = Path(path)
        try:
            task = build_operation_task(operation, path, params)
            outcome = await submit_and_poll(
                self._client,
                task,
                self._poll_options,
                token=token,
                retry_policy=self._retry_policy,
            )
        except Cancelled:
            raise
        except Exception as e:
            error = wrap_error(e)
            logger.warning("Failed to process %s: %s", path, error.message)
            return FileResult(
                input_path=str(path),
                status=FileStatus.FAILED,
                error=error.message,
                error_kind=error.kind,
            )

        return FileResult(
            input_path=str(path),
            status=FileStatus.SUCCESS,
            output_path=str(output_path_for(path, output_folder, output_suffix, operation)),
            payload=outcome.payload,
            attempts=outcome.attempts,
        )

    async def process_files(
        self,
        paths: Sequence[str | Path],
        operation: FolderOperation | str,
        params: dict[str, Any] | None = None,
        output_folder: str | Path | None = None,
        output_suffix: str = "",
        concurrency: int = DEFAULT_MAX_CONCURRENCY,
        stop_on_error: bool = False,
        progress: ProgressReporter | None = None,
        token: CancellationToken | None = None,
    ) -> BatchSummary:
        """Process ``paths`` with at most ``concurrency`` files in flight.

        Results are in input order. Files not started (or interrupted) when
        ``token`` fires are recorded as ``skipped``.

        Raises:
            BatchStopped: ``stop_on_error`` is set and a file failed.
        """
        op = parse_operation(operation) if isinstance(operation, str) else operation
        files = [Path(p) for p in paths]
        total = len(files)
        if total == 0:
            return BatchSummary(total=0)

        async def worker(path: Path, index: int) -> FileResult:
            if token is not None and token.cancelled:
                return _skipped(path)
            report_progress(progress, index, total, f"Processing {path.name} ({index + 1}/{total})")
            try:
                result = await self.process_file(
                    path, op, params, output_folder, output_suffix, token=token
                )
            except Cancelled:
                return _skipped(path)
            if stop_on_error and result.status == FileStatus.FAILED:
                raise BatchStopped(
                    f"Processing stopped at {path.name}: {result.error}",
                    path=str(path),
                    cause=result.error or "",
                )
            return result

        limiter = ConcurrencyLimiter(concurrency)
        results = await limiter.map(files, worker)
        summary = BatchSummary(total=total, results=results)

        report_progress(progress, total, total, summary.message)
        logger.info("%s (%s)", summary.message, op.value)
        return summary

    async def process_folder(
        self,
        folder: str | Path,
        operation: FolderOperation | str,
        params: dict[str, Any] | None = None,
        output_folder: str | Path | None = None,
        output_suffix: str = "",
        recursive: bool = False,
        max_files: int = DEFAULT_MAX_FILES,
        concurrency: int = DEFAULT_MAX_CONCURRENCY,
        stop_on_error: bool = False,
        progress: ProgressReporter | None = None,
        token: CancellationToken | None = None,
    ) -> BatchSummary:
        """Process up to ``max_files`` images found in ``folder``."""
        source = validate_folder(folder)
        if output_folder is not None:
            output_folder = validate_folder(output_folder)

        images = get_images_in_folder(source, recursive=recursive)
        if len(images) > max_files:
            logger.info("Found %d images in %s, processing first %d", len(images), source, max_files)
            images = images[:max_files]

        return await self.process_files(
            images,
            operation,
            params,
            output_folder=output_folder,
            output_suffix=output_suffix,
            concurrency=concurrency,
            stop_on_error=stop_on_error,
            progress=progress,
            token=token,
        )


def _skipped(path: Path) -> FileResult:
    return FileResult(
        input_path=str(path),
        status=FileStatus.SKIPPED,
        error="Operation was cancelled",
        error_kind=Cancelled.kind,
    )
