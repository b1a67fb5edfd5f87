"""Human-readable durations and sizes for user-facing messages."""

from __future__ import annotations

import math


def format_duration(ms: float) -> str:
    """Format milliseconds, e.g. 500 -> "500ms", 90000 -> "1m 30s"."""
    if ms < 0:
        return "0ms"
    if ms < 1000:
        return f"{math.floor(ms + 0.5)}ms"

    seconds = int(ms // 1000)
    if seconds < 60:
        return f"{seconds}s"

    minutes, remaining_seconds = divmod(seconds, 60)
    if minutes < 60:
        return f"{minutes}m {remaining_seconds}s" if remaining_seconds else f"{minutes}m"

    hours, remaining_minutes = divmod(minutes, 60)
    return f"{hours}h {remaining_minutes}m" if remaining_minutes else f"{hours}h"


def format_bytes(size: int) -> str:
    """Format a byte count, e.g. 1536 -> "1.50 KB"."""
    if size <= 0:
        return "0 B"

    units = ["B", "KB", "MB", "GB", "TB"]
    value = float(size)
    exponent = 0
    while value >= 1024 and exponent < len(units) - 1:
        value /= 1024
        exponent += 1

    if value >= 100:
        return f"{round(value)} {units[exponent]}"
    if value >= 10:
        return f"{value:.1f} {units[exponent]}"
    return f"{value:.2f} {units[exponent]}"
