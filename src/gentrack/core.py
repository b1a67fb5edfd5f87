"""Top-level entry point: GenTrack wires the connector's shared services together."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from watchdog.observers import Observer

from gentrack.concurrency.cancellation import CancellationToken, OperationRegistry
from gentrack.concurrency.rate_limiter import RateLimiter
from gentrack.config.schema import Settings, load_settings
from gentrack.errors.exceptions import ConfigurationError
from gentrack.errors.retry import RetryPolicy
from gentrack.pipeline.batch import DEFAULT_MAX_FILES, BatchProcessor
from gentrack.pipeline.operations import FolderOperation, parse_operation
from gentrack.progress import ProgressReporter
from gentrack.remote.client import GenerationClient, JobClient
from gentrack.remote.polling import (
    PollOptions,
    estimate_max_poll_time,
    poll_for_result,
    submit_and_poll,
)
from gentrack.types import BatchSummary, JobHandle, PollOutcome, WatchEntry
from gentrack.watch.registry import WatchRegistry
from gentrack.watch.watcher import DirectoryWatcher

logger = logging.getLogger(__name__)


class GenTrack:
    """Composition root with full lifecycle control.

    Owns one rate limiter shared by every remote call, the watch registry,
    the directory watcher and the tracker of cancellable operations. The
    HTTP client is created on first use so commands that never talk to the
    service work without an API key.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        client: JobClient | None = None,
        observer_factory: Callable[[], Any] | None = Observer,
    ) -> None:
        self._settings = settings or load_settings()
        self._rate_limiter = RateLimiter(
            capacity=self._settings.rate_limit_capacity,
            refill_rate=self._settings.rate_limit_refill_rate,
        )
        self._client = client
        self._owns_client = client is None
        self._batch: BatchProcessor | None = None

        self._poll_options = PollOptions(
            max_attempts=self._settings.poll_max_attempts,
            initial_interval_ms=self._settings.poll_initial_interval_ms,
            max_interval_ms=self._settings.poll_max_interval_ms,
        )
        self._retry_policy = RetryPolicy()

        self._operations = OperationRegistry()
        self._watch_registry = WatchRegistry()
        self._watcher = DirectoryWatcher(
            self._watch_registry,
            scan_handler=self._handle_scan,
            debounce_ms=self._settings.watch_debounce_ms,
            observer_factory=observer_factory,
        )

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter

    @property
    def operations(self) -> OperationRegistry:
        return self._operations

    @property
    def watcher(self) -> DirectoryWatcher:
        return self._watcher

    @property
    def poll_options(self) -> PollOptions:
        return self._poll_options

    @property
    def client(self) -> JobClient:
        if self._client is None:
            if not self._settings.api_key:
                raise ConfigurationError(
                    "No API key configured (set RUNWARE_API_KEY or api_key in gentrack.yaml)",
                    errors=["api_key: missing"],
                )
            self._client = GenerationClient(
                api_key=self._settings.api_key,
                base_url=self._settings.api_base_url,
                timeout=self._settings.request_timeout,
                rate_limiter=self._rate_limiter,
            )
        return self._client

    @property
    def batch(self) -> BatchProcessor:
        if self._batch is None:
            self._batch = BatchProcessor(self.client, self._poll_options, self._retry_policy)
        return self._batch

    # ── Jobs ──

    async def poll(
        self,
        handle: JobHandle,
        progress: ProgressReporter | None = None,
        request_id: str | None = None,
    ) -> PollOutcome:
        async with self._tracked(request_id) as token:
            return await poll_for_result(
                handle, self.client, self._poll_options, progress=progress, token=token
            )

    async def submit_and_poll(
        self,
        task: dict[str, Any],
        progress: ProgressReporter | None = None,
        request_id: str | None = None,
    ) -> PollOutcome:
        async with self._tracked(request_id) as token:
            return await submit_and_poll(
                self.client,
                task,
                self._poll_options,
                progress=progress,
                token=token,
                retry_policy=self._retry_policy,
            )

    async def process_folder(
        self,
        folder: str | Path,
        operation: FolderOperation | str,
        params: dict[str, Any] | None = None,
        output_folder: str | Path | None = None,
        output_suffix: str = "",
        recursive: bool = False,
        max_files: int = DEFAULT_MAX_FILES,
        concurrency: int | None = None,
        stop_on_error: bool = False,
        progress: ProgressReporter | None = None,
        request_id: str | None = None,
    ) -> BatchSummary:
        async with self._tracked(request_id) as token:
            return await self.batch.process_folder(
                folder,
                operation,
                params,
                output_folder=output_folder,
                output_suffix=output_suffix,
                recursive=recursive,
                max_files=max_files,
                concurrency=concurrency or self._settings.max_concurrency,
                stop_on_error=stop_on_error,
                progress=progress,
                token=token,
            )

    def cancel(self, request_id: str, reason: str = "") -> bool:
        return self._operations.cancel(request_id, reason)

    def estimate_max_poll_time(self) -> float:
        """Worst-case polling wait in ms under the current settings."""
        return estimate_max_poll_time(
            self._poll_options.max_attempts,
            self._poll_options.initial_interval_ms,
            self._poll_options.max_interval_ms,
        )

    # ── Watches ──

    def start_watch(
        self,
        path: str | Path,
        operation: FolderOperation | str,
        params: dict[str, Any] | None = None,
        output_folder: str | Path | None = None,
        stop_on_error: bool = False,
    ) -> WatchEntry:
        op = parse_operation(operation) if isinstance(operation, str) else operation
        return self._watcher.start(path, op.value, params, output_folder, stop_on_error)

    def stop_watch(self, watch_id: str) -> WatchEntry:
        return self._watcher.stop(watch_id)

    def list_watches(self, active_only: bool = False) -> list[WatchEntry]:
        return self._watcher.list(active_only=active_only)

    def watch_status(self, watch_id: str) -> WatchEntry:
        return self._watcher.status(watch_id)

    async def _handle_scan(
        self, entry: WatchEntry, files: list[Path], token: CancellationToken | None
    ) -> BatchSummary:
        return await self.batch.process_files(
            files,
            entry.operation,
            entry.operation_params,
            output_folder=entry.output_folder,
            concurrency=self._settings.max_concurrency,
            stop_on_error=entry.stop_on_error,
            token=token,
        )

    # ── Lifecycle ──

    @asynccontextmanager
    async def _tracked(self, request_id: str | None) -> AsyncIterator[CancellationToken | None]:
        if request_id is None:
            yield None
            return
        token = self._operations.create(request_id)
        try:
            yield token
        finally:
            self._operations.complete(request_id)

    async def aclose(self) -> None:
        """Stop all watches, cancel tracked operations and close the HTTP client."""
        cancelled = self._operations.cancel_all()
        if cancelled:
            logger.info("Cancelled %d in-flight operation(s) on shutdown", cancelled)
        await self._watcher.stop_all()
        if self._owns_client and isinstance(self._client, GenerationClient):
            await self._client.close()
        self._client = None
        self._batch = None

    async def __aenter__(self) -> GenTrack:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
