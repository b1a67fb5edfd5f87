"""Tests for package defaults."""

from gentrack.config.defaults import (
    DEFAULT_LOG_LEVEL,
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_POLL_INTERVAL_MS,
    DEFAULT_POLL_MAX_ATTEMPTS,
    DEFAULT_WATCH_DEBOUNCE_MS,
    MAX_POLL_INTERVAL_MS,
    get_defaults,
)


class TestDefaults:
    def test_polling_defaults(self):
        assert DEFAULT_POLL_MAX_ATTEMPTS == 150
        assert DEFAULT_POLL_INTERVAL_MS == 2000
        assert MAX_POLL_INTERVAL_MS == 10_000

    def test_watch_and_batch_defaults(self):
        assert DEFAULT_WATCH_DEBOUNCE_MS == 500
        assert DEFAULT_MAX_CONCURRENCY == 2

    def test_default_log_level(self):
        assert DEFAULT_LOG_LEVEL == "WARNING"

    def test_get_defaults_has_all_keys(self):
        d = get_defaults()
        expected_keys = {
            "api_base_url", "request_timeout",
            "poll_max_attempts", "poll_initial_interval_ms", "poll_max_interval_ms",
            "rate_limit_capacity", "rate_limit_refill_rate",
            "watch_debounce_ms", "max_concurrency", "log_level",
        }
        assert expected_keys == set(d.keys())

    def test_api_key_has_no_default(self):
        assert "api_key" not in get_defaults()
