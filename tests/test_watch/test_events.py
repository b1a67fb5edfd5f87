"""Tests for the observer-thread event bridge."""

import asyncio

from watchdog.events import (
    DirCreatedEvent,
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
)

from gentrack.watch.events import WatchEventHandler


class FakeLoop:
    def __init__(self, closed=False):
        self.calls = []
        self.closed = closed

    def call_soon_threadsafe(self, callback, *args):
        if self.closed:
            raise RuntimeError("Event loop is closed")
        self.calls.append((callback, args))


def _handler(loop):
    received = []
    handler = WatchEventHandler("w1", loop, lambda wid, path: received.append((wid, path)))
    return handler, received


class TestWatchEventHandler:
    def test_created_and_modified_forwarded(self):
        loop = FakeLoop()
        handler, _ = _handler(loop)
        handler.dispatch(FileCreatedEvent("/in/a.png"))
        handler.dispatch(FileModifiedEvent("/in/a.png"))
        assert [args for _, args in loop.calls] == [("w1", "/in/a.png"), ("w1", "/in/a.png")]

    def test_move_uses_destination(self):
        loop = FakeLoop()
        handler, _ = _handler(loop)
        handler.dispatch(FileMovedEvent("/in/a.tmp", "/in/a.png"))
        assert loop.calls[0][1] == ("w1", "/in/a.png")

    def test_deletions_and_directories_ignored(self):
        loop = FakeLoop()
        handler, _ = _handler(loop)
        handler.dispatch(FileDeletedEvent("/in/a.png"))
        handler.dispatch(DirCreatedEvent("/in/sub"))
        assert loop.calls == []

    def test_closed_loop_drops_event(self):
        handler, _ = _handler(FakeLoop(closed=True))
        handler.dispatch(FileCreatedEvent("/in/a.png"))

    async def test_delivers_on_running_loop(self):
        handler, received = _handler(asyncio.get_running_loop())
        handler.dispatch(FileCreatedEvent(b"/in/b.png"))
        await asyncio.sleep(0)
        assert received == [("w1", "/in/b.png")]
