"""Bridge watchdog's observer thread into the asyncio event loop."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)

logger = logging.getLogger(__name__)

_RELEVANT_EVENTS = frozenset({EVENT_TYPE_CREATED, EVENT_TYPE_MODIFIED, EVENT_TYPE_MOVED})


class WatchEventHandler(FileSystemEventHandler):
    """Forwards file events for one watch to ``on_change`` on the loop thread.

    Runs on the observer thread, so it never touches watcher state directly.
    Deletions are ignored; directory events too.
    """

    def __init__(
        self,
        watch_id: str,
        loop: asyncio.AbstractEventLoop,
        on_change: Callable[[str, str | None], None],
    ) -> None:
        super().__init__()
        self._watch_id = watch_id
        self._loop = loop
        self._on_change = on_change

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in _RELEVANT_EVENTS:
            return

        path = getattr(event, "dest_path", "") or event.src_path
        if isinstance(path, bytes):
            path = path.decode(errors="replace")

        try:
            self._loop.call_soon_threadsafe(self._on_change, self._watch_id, str(path))
        except RuntimeError:
            # Loop already closed during shutdown
            logger.debug("Dropped event for %s: event loop is closed", path)
