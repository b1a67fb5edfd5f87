"""Tests for the watch registry."""

import pytest

from gentrack.errors.exceptions import WatchNotFound
from gentrack.types import WatchEntry
from gentrack.watch.registry import WatchRegistry


def _entry(watch_id, path="/data/in", operation="upscale"):
    return WatchEntry(id=watch_id, path=path, operation=operation)


class TestWatchRegistry:
    def test_add_and_get(self):
        registry = WatchRegistry()
        entry = _entry("w1")
        registry.add(entry)
        assert registry.get("w1") is entry
        assert len(registry) == 1

    def test_get_unknown(self):
        with pytest.raises(WatchNotFound):
            WatchRegistry().get("missing")

    def test_deactivate_keeps_entry(self):
        registry = WatchRegistry()
        registry.add(_entry("w1"))
        registry.deactivate("w1")
        assert not registry.get("w1").active
        assert registry.active_count == 0
        assert [e.id for e in registry.list()] == ["w1"]
        assert registry.list(active_only=True) == []

    def test_find_active_by_path_ignores_inactive(self):
        registry = WatchRegistry()
        registry.add(_entry("w1", path="/a"))
        assert registry.find_active_by_path("/a").id == "w1"
        registry.deactivate("w1")
        assert registry.find_active_by_path("/a") is None

    def test_list_in_creation_order(self):
        registry = WatchRegistry()
        for i in range(3):
            registry.add(_entry(f"w{i}", path=f"/p{i}"))
        assert [e.id for e in registry.list()] == ["w0", "w1", "w2"]

    def test_new_entries_start_empty(self):
        entry = _entry("w1")
        assert entry.active
        assert entry.last_scan_time is None
        assert entry.scan_count == entry.processed_count == entry.failed_count == 0
