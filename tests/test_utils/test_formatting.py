"""Tests for human-readable formatting."""

import pytest

from gentrack.utils.formatting import format_bytes, format_duration


class TestFormatDuration:
    @pytest.mark.parametrize(
        "ms, expected",
        [
            (-5, "0ms"),
            (0, "0ms"),
            (499.6, "500ms"),
            (1000, "1s"),
            (59_999, "59s"),
            (60_000, "1m"),
            (90_000, "1m 30s"),
            (3_600_000, "1h"),
            (3_660_000, "1h 1m"),
            (1_476_250, "24m 36s"),
        ],
    )
    def test_format(self, ms, expected):
        assert format_duration(ms) == expected


class TestFormatBytes:
    @pytest.mark.parametrize(
        "size, expected",
        [
            (0, "0 B"),
            (512, "512 B"),
            (1536, "1.50 KB"),
            (10 * 1024, "10.0 KB"),
            (5 * 1024**2, "5.00 MB"),
            (3 * 1024**5, "3072 TB"),
        ],
    )
    def test_format(self, size, expected):
        assert format_bytes(size) == expected
