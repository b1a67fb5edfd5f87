"""Tests for the debounced directory watcher."""

import asyncio
import os

import pytest

from gentrack.errors.exceptions import (
    AlreadyWatching,
    BatchStopped,
    ConfigurationError,
    FolderNotFound,
    WatchNotFound,
)
from gentrack.types import BatchSummary, FileResult, FileStatus
from gentrack.watch.registry import WatchRegistry
from gentrack.watch.watcher import DirectoryWatcher, WatchState

DEBOUNCE_MS = 50


class RecordingHandler:
    """Scan handler that records what it was given and reports success."""

    def __init__(self, delay=0.0, fail_names=()):
        self.calls: list[list[str]] = []
        self.delay = delay
        self.fail_names = set(fail_names)
        self.started = asyncio.Event()

    async def __call__(self, entry, files, token):
        self.calls.append(sorted(p.name for p in files))
        self.started.set()
        await asyncio.sleep(self.delay)
        return BatchSummary(
            total=len(files),
            results=[
                FileResult(
                    input_path=str(p),
                    status=FileStatus.FAILED if p.name in self.fail_names else FileStatus.SUCCESS,
                )
                for p in files
            ],
        )


@pytest.fixture
def handler():
    return RecordingHandler()


@pytest.fixture
def watcher(handler):
    return DirectoryWatcher(
        WatchRegistry(), handler, debounce_ms=DEBOUNCE_MS, observer_factory=None
    )


class TestLifecycle:
    async def test_start_registers_entry(self, watcher, image_folder):
        entry = watcher.start(image_folder, "upscale", {"upscaleFactor": 4})
        assert entry.active
        assert entry.path == str(image_folder.resolve())
        assert entry.operation_params == {"upscaleFactor": 4}
        assert watcher.status(entry.id) is entry
        assert watcher.state(entry.id) == WatchState.IDLE

    async def test_stop_on_error_kept_on_entry(self, watcher, image_folder, tmp_path):
        assert not watcher.start(image_folder, "upscale").stop_on_error
        other = tmp_path / "other"
        other.mkdir()
        assert watcher.start(other, "upscale", stop_on_error=True).stop_on_error

    async def test_missing_folder(self, watcher, tmp_path):
        with pytest.raises(FolderNotFound):
            watcher.start(tmp_path / "missing", "upscale")

    async def test_missing_output_folder(self, watcher, image_folder, tmp_path):
        with pytest.raises(FolderNotFound):
            watcher.start(image_folder, "upscale", output_folder=tmp_path / "missing")

    async def test_duplicate_active_path_rejected(self, watcher, image_folder):
        first = watcher.start(image_folder, "upscale")
        with pytest.raises(AlreadyWatching) as exc_info:
            watcher.start(image_folder, "caption")
        assert exc_info.value.watch_id == first.id

    async def test_restart_after_stop_allowed(self, watcher, image_folder):
        first = watcher.start(image_folder, "upscale")
        watcher.stop(first.id)
        second = watcher.start(image_folder, "upscale")
        assert second.id != first.id

    async def test_stop_keeps_entry_listable(self, watcher, image_folder, tmp_path):
        entry = watcher.start(image_folder, "upscale")
        other = tmp_path / "other"
        other.mkdir()
        watcher.start(other, "caption")

        stopped = watcher.stop(entry.id)

        assert not stopped.active
        assert len(watcher.list()) == 2
        assert [e.path for e in watcher.list(active_only=True)] == [str(other.resolve())]
        assert not watcher.status(entry.id).active

    async def test_stop_unknown(self, watcher):
        with pytest.raises(WatchNotFound):
            watcher.stop("missing")

    async def test_stop_is_idempotent(self, watcher, image_folder):
        entry = watcher.start(image_folder, "upscale")
        watcher.stop(entry.id)
        assert not watcher.stop(entry.id).active

    def test_invalid_debounce(self, handler):
        with pytest.raises(ConfigurationError):
            DirectoryWatcher(WatchRegistry(), handler, debounce_ms=0, observer_factory=None)


class TestDebounce:
    async def test_burst_produces_one_scan(self, watcher, handler, image_folder, sample_image_bytes):
        entry = watcher.start(image_folder, "upscale")
        (image_folder / "new.png").write_bytes(sample_image_bytes)

        for _ in range(5):
            watcher.notify_change(entry.id, str(image_folder / "new.png"))
            await asyncio.sleep(DEBOUNCE_MS / 1000 / 5)
        assert watcher.state(entry.id) == WatchState.DEBOUNCING

        await watcher.wait_idle()

        assert handler.calls == [["new.png"]]
        assert entry.scan_count == 1
        assert entry.processed_count == 1
        assert entry.last_scan_time is not None
        assert watcher.state(entry.id) == WatchState.IDLE

    async def test_preexisting_files_not_processed(self, watcher, handler, image_folder):
        entry = watcher.start(image_folder, "upscale")
        watcher.notify_change(entry.id)
        await watcher.wait_idle()
        assert handler.calls == []
        assert entry.scan_count == 1

    async def test_modified_file_processed_again(
        self, watcher, handler, image_folder, sample_image_bytes
    ):
        entry = watcher.start(image_folder, "upscale")
        target = image_folder / "a.png"
        target.write_bytes(sample_image_bytes * 2)
        bumped = target.stat().st_mtime_ns + 1_000_000_000
        os.utime(target, ns=(bumped, bumped))
        watcher.notify_change(entry.id)
        await watcher.wait_idle()
        assert handler.calls == [["a.png"]]

    async def test_already_processed_files_not_repeated(
        self, watcher, handler, image_folder, sample_image_bytes
    ):
        entry = watcher.start(image_folder, "upscale")
        (image_folder / "new.png").write_bytes(sample_image_bytes)
        watcher.notify_change(entry.id)
        await watcher.wait_idle()

        (image_folder / "later.png").write_bytes(sample_image_bytes)
        watcher.notify_change(entry.id)
        await watcher.wait_idle()

        assert handler.calls == [["new.png"], ["later.png"]]
        assert entry.scan_count == 2

    async def test_non_images_ignored(self, watcher, handler, image_folder):
        entry = watcher.start(image_folder, "upscale")
        (image_folder / "readme.md").write_text("hi")
        watcher.notify_change(entry.id)
        await watcher.wait_idle()
        assert handler.calls == []

    async def test_failures_counted(self, image_folder, sample_image_bytes):
        handler = RecordingHandler(fail_names={"bad.png"})
        watcher = DirectoryWatcher(
            WatchRegistry(), handler, debounce_ms=DEBOUNCE_MS, observer_factory=None
        )
        entry = watcher.start(image_folder, "upscale")
        (image_folder / "good.png").write_bytes(sample_image_bytes)
        (image_folder / "bad.png").write_bytes(sample_image_bytes)
        watcher.notify_change(entry.id)
        await watcher.wait_idle()
        assert entry.processed_count == 1
        assert entry.failed_count == 1

    async def test_stop_cancels_pending_debounce(self, watcher, handler, image_folder):
        entry = watcher.start(image_folder, "upscale")
        watcher.notify_change(entry.id)
        watcher.stop(entry.id)
        await watcher.wait_idle()
        assert handler.calls == []
        assert entry.scan_count == 0

    async def test_events_for_stopped_watch_ignored(self, watcher, handler, image_folder):
        entry = watcher.start(image_folder, "upscale")
        watcher.stop(entry.id)
        watcher.notify_change(entry.id)
        watcher.notify_change("unknown")
        await watcher.wait_idle()
        assert handler.calls == []


class TestScanSerialization:
    async def test_event_during_scan_gives_follow_up_scan(self, image_folder, sample_image_bytes):
        handler = RecordingHandler(delay=0.2)
        watcher = DirectoryWatcher(
            WatchRegistry(), handler, debounce_ms=DEBOUNCE_MS, observer_factory=None
        )
        entry = watcher.start(image_folder, "upscale")
        (image_folder / "first.png").write_bytes(sample_image_bytes)
        watcher.notify_change(entry.id)

        await asyncio.wait_for(handler.started.wait(), timeout=2)
        assert watcher.state(entry.id) == WatchState.SCANNING

        (image_folder / "second.png").write_bytes(sample_image_bytes)
        watcher.notify_change(entry.id)
        await watcher.wait_idle()

        assert handler.calls == [["first.png"], ["second.png"]]
        assert entry.scan_count == 2

    async def test_failed_scan_is_retried_on_next_event(self, image_folder, sample_image_bytes):
        calls = []

        async def flaky(entry, files, token):
            calls.append(sorted(p.name for p in files))
            if len(calls) == 1:
                raise BatchStopped("stopped", path=str(files[0]))
            return None

        watcher = DirectoryWatcher(
            WatchRegistry(), flaky, debounce_ms=DEBOUNCE_MS, observer_factory=None
        )
        entry = watcher.start(image_folder, "upscale")
        (image_folder / "new.png").write_bytes(sample_image_bytes)

        watcher.notify_change(entry.id)
        await watcher.wait_idle()
        assert entry.scan_count == 0
        assert entry.failed_count == 1

        watcher.notify_change(entry.id)
        await watcher.wait_idle()
        assert calls == [["new.png"], ["new.png"]]
        assert entry.scan_count == 1


class TestStopAll:
    async def test_stop_all(self, watcher, image_folder, tmp_path):
        other = tmp_path / "other"
        other.mkdir()
        watcher.start(image_folder, "upscale")
        watcher.start(other, "caption")
        await watcher.stop_all()
        assert watcher.list(active_only=True) == []
        assert len(watcher.list()) == 2
