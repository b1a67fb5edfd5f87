"""Debounced directory watching that turns file changes into scheduled jobs.

Per watch: Idle -> Debouncing -> Scanning -> Idle. Every raw change event
restarts the watch's debounce timer; a scan runs only once ``debounce_ms``
pass without a new event. A scan picks up files modified since the previous
scan started and hands them to the scan handler (normally the batch
pipeline). Scans of one watch never overlap: an event arriving mid-scan arms
a new timer whose scan waits for the running one to finish.

Watches live in process memory only and are gone after a restart.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from watchdog.observers import Observer

from gentrack.concurrency.cancellation import CancellationToken, Sleeper, cancellable_sleep
from gentrack.config.defaults import DEFAULT_WATCH_DEBOUNCE_MS
from gentrack.errors.exceptions import (
    AlreadyWatching,
    BatchStopped,
    Cancelled,
    ConfigurationError,
    GenTrackError,
)
from gentrack.pipeline.folders import IMAGE_EXTENSIONS, files_changed_since, validate_folder
from gentrack.types import BatchSummary, WatchEntry
from gentrack.watch.events import WatchEventHandler

if TYPE_CHECKING:
    from watchdog.observers.api import BaseObserver, ObservedWatch

    from gentrack.watch.registry import WatchRegistry

logger = logging.getLogger(__name__)

# File timestamps come from a coarse kernel clock that can trail wall time
_MTIME_SLACK = timedelta(seconds=2)

# (entry, changed files, watch token) -> summary of what was processed
ScanHandler = Callable[
    [WatchEntry, list[Path], CancellationToken | None], Awaitable[BatchSummary | None]
]


class WatchState(StrEnum):
    IDLE = "idle"
    DEBOUNCING = "debouncing"
    SCANNING = "scanning"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _WatchRuntime:
    """Loop-side state of one active watch, kept out of the public entry."""

    def __init__(self, baseline: datetime) -> None:
        self.token = CancellationToken()
        self.scan_lock = asyncio.Lock()
        self.debounce_task: asyncio.Task[None] | None = None
        self.scanning = False
        # Modification times after this are picked up by the next scan
        self.baseline = baseline
        # path -> mtime_ns of recent files the previous scan already saw
        self.seen: dict[str, int] = {}
        self.observed: ObservedWatch | None = None

    @property
    def state(self) -> WatchState:
        if self.scanning:
            return WatchState.SCANNING
        if self.debounce_task is not None and not self.debounce_task.done():
            return WatchState.DEBOUNCING
        return WatchState.IDLE


class DirectoryWatcher:
    """Lifecycle (start/stop/list/status) and debounced scanning of watches.

    ``observer_factory=None`` disables filesystem observation; events can
    then only arrive through ``notify_change``.
    """

    def __init__(
        self,
        registry: WatchRegistry,
        scan_handler: ScanHandler,
        debounce_ms: float = DEFAULT_WATCH_DEBOUNCE_MS,
        observer_factory: Callable[[], BaseObserver] | None = Observer,
        sleep: Sleeper = cancellable_sleep,
        extensions: frozenset[str] | None = IMAGE_EXTENSIONS,
        recursive: bool = False,
    ) -> None:
        if debounce_ms <= 0:
            raise ConfigurationError(f"Debounce interval must be positive, got {debounce_ms}")
        self._registry = registry
        self._scan_handler = scan_handler
        self._debounce_s = debounce_ms / 1000.0
        self._observer_factory = observer_factory
        self._sleep = sleep
        self._extensions = extensions
        self._recursive = recursive

        self._observer: BaseObserver | None = None
        self._runtimes: dict[str, _WatchRuntime] = {}
        self._tasks: set[asyncio.Task[Any]] = set()

    # ── Lifecycle ──

    def start(
        self,
        path: str | Path,
        operation: str,
        params: dict[str, Any] | None = None,
        output_folder: str | Path | None = None,
        stop_on_error: bool = False,
    ) -> WatchEntry:
        """Begin watching ``path``.

        With ``stop_on_error`` a scan stops at its first failed file instead
        of processing the rest.

        Raises:
            FolderNotFound: ``path`` or ``output_folder`` is not a directory.
            AlreadyWatching: an active watch already covers ``path``.
        """
        folder = validate_folder(path)
        output = validate_folder(output_folder) if output_folder is not None else None

        existing = self._registry.find_active_by_path(str(folder))
        if existing is not None:
            raise AlreadyWatching(str(folder), existing.id)

        entry = WatchEntry(
            id=str(uuid.uuid4()),
            path=str(folder),
            operation=str(operation),
            operation_params=dict(params or {}),
            output_folder=str(output) if output is not None else None,
            stop_on_error=stop_on_error,
        )
        runtime = _WatchRuntime(baseline=entry.created_at)
        # Files already present when the watch starts are not processed
        runtime.seen = self._recent_files(folder, entry.created_at)

        if self._observer_factory is not None:
            handler = WatchEventHandler(entry.id, asyncio.get_running_loop(), self.notify_change)
            observer = self._ensure_observer()
            runtime.observed = observer.schedule(handler, str(folder), recursive=self._recursive)

        self._registry.add(entry)
        self._runtimes[entry.id] = runtime
        logger.info("Started watching %s (operation: %s, id: %s)", folder, operation, entry.id)
        return entry

    def stop(self, watch_id: str) -> WatchEntry:
        """Deactivate a watch. It stays listable with its final counters.

        A scan in progress is cancelled cooperatively: files it has not
        started are recorded as skipped.
        """
        entry = self._registry.get(watch_id)
        runtime = self._runtimes.pop(watch_id, None)
        if runtime is not None:
            runtime.token.cancel("watch stopped")
            if runtime.debounce_task is not None:
                runtime.debounce_task.cancel()
            if runtime.observed is not None and self._observer is not None:
                self._observer.unschedule(runtime.observed)

        if entry.active:
            self._registry.deactivate(watch_id)
            logger.info("Stopped watching %s (id: %s)", entry.path, watch_id)
        return entry

    async def stop_all(self) -> None:
        for entry in self._registry.list(active_only=True):
            self.stop(entry.id)

        observer, self._observer = self._observer, None
        if observer is not None:
            observer.stop()
            await asyncio.to_thread(observer.join, 2)

        await self.wait_idle()

    def list(self, active_only: bool = False) -> list[WatchEntry]:
        return self._registry.list(active_only=active_only)

    def status(self, watch_id: str) -> WatchEntry:
        return self._registry.get(watch_id)

    def state(self, watch_id: str) -> WatchState:
        self._registry.get(watch_id)
        runtime = self._runtimes.get(watch_id)
        return runtime.state if runtime is not None else WatchState.IDLE

    async def wait_idle(self) -> None:
        """Wait until no debounce timer or scan is pending."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ── Events and scanning ──

    def notify_change(self, watch_id: str, path: str | None = None) -> None:
        """Record a raw change event; (re)starts the watch's debounce timer.

        Must be called on the event loop thread. Events for unknown or
        stopped watches are ignored.
        """
        runtime = self._runtimes.get(watch_id)
        if runtime is None:
            return

        if runtime.debounce_task is not None and not runtime.debounce_task.done():
            runtime.debounce_task.cancel()

        logger.debug("Change in watch %s: %s", watch_id, path or "<unknown>")
        runtime.debounce_task = self._spawn(self._debounce(watch_id, runtime))

    async def _debounce(self, watch_id: str, runtime: _WatchRuntime) -> None:
        try:
            await self._sleep(self._debounce_s, runtime.token)
        except Cancelled:
            return
        # Separate task so a later event can only reset the timer, not abort the scan
        self._spawn(self._scan(watch_id, runtime))

    async def _scan(self, watch_id: str, runtime: _WatchRuntime) -> None:
        async with runtime.scan_lock:
            entry = self._registry.get(watch_id)
            if not entry.active or runtime.token.cancelled:
                return

            runtime.scanning = True
            started = _utcnow()
            try:
                current = self._recent_files(entry.path, runtime.baseline)
                files = [Path(p) for p, sig in current.items() if runtime.seen.get(p) != sig]
                if files:
                    logger.info("Scan of %s found %d changed file(s)", entry.path, len(files))
                    summary = await self._scan_handler(entry, files, runtime.token)
                    if summary is not None:
                        entry.processed_count += summary.processed
                        entry.failed_count += summary.failed
                runtime.baseline = started
                runtime.seen = current
                entry.scan_count += 1
                entry.last_scan_time = _utcnow()
            except Cancelled:
                logger.info("Scan of %s cancelled", entry.path)
            except BatchStopped as e:
                entry.failed_count += 1
                logger.warning("Scan of %s stopped at %s: %s", entry.path, e.path, e.cause)
            except GenTrackError as e:
                logger.error("Scan of %s failed: %s", entry.path, e.message)
            except Exception:
                logger.exception("Unexpected error while scanning %s", entry.path)
            finally:
                runtime.scanning = False

    def _recent_files(self, folder: str | Path, since: datetime) -> dict[str, int]:
        signatures: dict[str, int] = {}
        for path in files_changed_since(
            folder, since - _MTIME_SLACK, self._extensions, self._recursive
        ):
            try:
                signatures[str(path)] = path.stat().st_mtime_ns
            except OSError as e:
                logger.debug("Skipping %s: %s", path, e)
        return signatures

    def _spawn(self, coro: Any) -> asyncio.Task[Any]:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _ensure_observer(self) -> BaseObserver:
        if self._observer is None:
            assert self._observer_factory is not None
            self._observer = self._observer_factory()
            self._observer.start()
        return self._observer
