"""Folder walking and change detection for batch and watch processing."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from datetime import datetime
from pathlib import Path

from gentrack.errors.exceptions import FolderNotFound

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".webp", ".gif", ".bmp"})
VIDEO_EXTENSIONS = frozenset({".mp4", ".webm", ".mov"})
AUDIO_EXTENSIONS = frozenset({".mp3", ".wav", ".ogg"})


def validate_folder(path: str | Path) -> Path:
    """Resolve ``path`` and check it is an existing directory."""
    folder = Path(path).expanduser().resolve()
    if not folder.is_dir():
        raise FolderNotFound(f"Folder not found: {path}", path=str(path))
    return folder


def walk_folder(
    folder: str | Path,
    extensions: frozenset[str] | None = None,
    recursive: bool = False,
    max_depth: int | None = None,
    skip_hidden: bool = True,
) -> Iterator[Path]:
    """Yield files under ``folder`` in name order.

    ``max_depth`` counts subdirectory levels below ``folder`` and only
    applies when ``recursive`` is set.
    """
    yield from _walk(validate_folder(folder), extensions, recursive, max_depth, skip_hidden, 0)


def _walk(
    folder: Path,
    extensions: frozenset[str] | None,
    recursive: bool,
    max_depth: int | None,
    skip_hidden: bool,
    depth: int,
) -> Iterator[Path]:
    try:
        entries = sorted(folder.iterdir(), key=lambda p: p.name)
    except OSError as e:
        logger.warning("Failed to read directory %s: %s", folder, e)
        return

    for entry in entries:
        if skip_hidden and entry.name.startswith("."):
            continue
        if entry.is_file():
            if extensions is None or entry.suffix.lower() in extensions:
                yield entry
        elif entry.is_dir() and recursive and (max_depth is None or depth < max_depth):
            yield from _walk(entry, extensions, recursive, max_depth, skip_hidden, depth + 1)


def get_images_in_folder(folder: str | Path, recursive: bool = False) -> list[Path]:
    return list(walk_folder(folder, extensions=IMAGE_EXTENSIONS, recursive=recursive))


def files_changed_since(
    folder: str | Path,
    since: datetime | None,
    extensions: frozenset[str] | None = IMAGE_EXTENSIONS,
    recursive: bool = False,
) -> list[Path]:
    """Matching files whose modification time is after ``since``.

    ``since=None`` returns every matching file.
    """
    files = list(walk_folder(folder, extensions=extensions, recursive=recursive))
    if since is None:
        return files

    threshold = since.timestamp()
    changed = []
    for path in files:
        try:
            if path.stat().st_mtime > threshold:
                changed.append(path)
        except OSError:
            # Removed between listing and stat
            continue
    return changed
