import asyncio
from types import SimpleNamespace

import pytest

from gentrack.types import JobStatus, StatusResponse


class FakeClock:
    """Virtual monotonic clock whose sleep only advances time."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds, token=None):
        if token is not None:
            token.raise_if_cancelled()
        self.sleeps.append(seconds)
        self.now += seconds
        # Still yield so other tasks interleave as with a real sleep
        await asyncio.sleep(0)


class FakeJobClient:
    """Scripted remote client: each status query pops the next response.

    The last scripted item repeats once the script runs out. Exceptions in the
    script are raised instead of returned.
    """

    def __init__(self, statuses=None, handle="task-1"):
        self.statuses = list(statuses or [StatusResponse(status=JobStatus.SUCCESS)])
        self.handle = handle
        self.submitted: list[dict] = []
        self.status_calls = 0

    async def submit(self, task, token=None, timeout=None):
        self.submitted.append(task)
        return task.get("taskUUID") or self.handle

    async def get_status(self, handle, token=None, timeout=None):
        self.status_calls += 1
        item = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        if isinstance(item, Exception):
            raise item
        return item


def processing():
    return StatusResponse(status=JobStatus.PROCESSING)


def success(**payload):
    return StatusResponse(status=JobStatus.SUCCESS, payload=payload)


def failure(**payload):
    return StatusResponse(status=JobStatus.ERROR, payload=payload)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_client():
    return FakeJobClient


@pytest.fixture
def status():
    """Shortcuts for building scripted status responses."""
    return SimpleNamespace(processing=processing, success=success, failure=failure)


@pytest.fixture
def sample_image_bytes():
    """Minimal valid PNG for testing (1x1 white pixel)."""
    import base64
    return base64.b64decode(
        "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR4"
        "nGP4z8BQDwAEgAF/pooBPQAAAABJRU5ErkJggg=="
    )


@pytest.fixture
def image_folder(tmp_path, sample_image_bytes):
    """Folder with three PNGs, a text file and a hidden image."""
    folder = tmp_path / "images"
    folder.mkdir()
    for name in ("a.png", "b.png", "c.jpg"):
        (folder / name).write_bytes(sample_image_bytes)
    (folder / "notes.txt").write_text("not an image")
    (folder / ".hidden.png").write_bytes(sample_image_bytes)
    return folder


@pytest.fixture(autouse=True)
def _isolated_config(tmp_path, monkeypatch):
    """Keep user config files and GENTRACK_* variables out of tests."""
    import gentrack.config.hierarchy as hierarchy

    monkeypatch.setattr(hierarchy, "_GLOBAL_CONFIG_PATH", tmp_path / "no-global.yaml")
    monkeypatch.chdir(tmp_path)
    for key in list(hierarchy._ENV_MAP):
        monkeypatch.delenv(key, raising=False)
