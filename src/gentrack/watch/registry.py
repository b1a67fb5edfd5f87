"""In-memory registry of directory watches."""

from __future__ import annotations

from gentrack.errors.exceptions import WatchNotFound
from gentrack.types import WatchEntry


class WatchRegistry:
    """Keeps every watch created in this process, active or stopped.

    Stopping a watch only deactivates its entry so its counters stay
    queryable. Nothing is persisted.
    """

    def __init__(self) -> None:
        self._entries: dict[str, WatchEntry] = {}

    def add(self, entry: WatchEntry) -> None:
        self._entries[entry.id] = entry

    def get(self, watch_id: str) -> WatchEntry:
        entry = self._entries.get(watch_id)
        if entry is None:
            raise WatchNotFound(watch_id)
        return entry

    def find_active_by_path(self, path: str) -> WatchEntry | None:
        for entry in self._entries.values():
            if entry.active and entry.path == path:
                return entry
        return None

    def deactivate(self, watch_id: str) -> WatchEntry:
        entry = self.get(watch_id)
        entry.active = False
        return entry

    def list(self, active_only: bool = False) -> list[WatchEntry]:
        """Entries in creation order."""
        if active_only:
            return [e for e in self._entries.values() if e.active]
        return list(self._entries.values())

    @property
    def active_count(self) -> int:
        return sum(1 for e in self._entries.values() if e.active)

    def __len__(self) -> int:
        return len(self._entries)
