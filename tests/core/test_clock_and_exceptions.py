"""
Tests for the clock abstraction and the exception hierarchy.
"""

from datetime import datetime, timedelta, timezone

from core.clock import MockClock, ensure_utc, to_iso8601
from core.exceptions import (
    ConfigurationError,
    DeliveryError,
    UpstreamAuthError,
    UpstreamDataError,
    UpstreamError,
    UpstreamTransientError,
)


class TestMockClock:

    def test_advance(self, clock):
        start = clock.now()

        clock.advance(seconds=30)
        clock.advance(days=1)

        assert clock.now() - start == timedelta(days=1, seconds=30)
        assert clock.now_ms() == int(clock.timestamp() * 1000)

    def test_naive_initial_time_is_utc(self):
        clock = MockClock(datetime(2026, 1, 1, 0, 0))

        assert clock.now().tzinfo is not None
        assert clock.today().isoformat() == "2026-01-01"

    def test_helpers(self):
        naive = datetime(2026, 3, 15, 12, 0)

        assert ensure_utc(naive).tzinfo == timezone.utc
        assert to_iso8601(naive) == "2026-03-15T12:00:00+00:00"


class TestExceptions:
    """Classification drives retries."""

    def test_upstream_classification(self):
        assert UpstreamTransientError("503").is_recoverable
        assert UpstreamAuthError("401").is_recoverable
        assert not UpstreamDataError("bad json").is_recoverable
        assert not UpstreamError("404", status_code=404).is_recoverable
        assert DeliveryError("smtp down").is_recoverable

    def test_context_and_serialization(self):
        error = UpstreamError("HTTP 404", url="https://x.test/a", status_code=404)

        payload = error.to_dict()

        assert payload["type"] == "UpstreamError"
        assert payload["context"] == {"url": "https://x.test/a", "status_code": 404}
        assert payload["classification"] == "non_recoverable"

    def test_cause_recorded(self):
        cause = ValueError("nope")
        error = ConfigurationError("bad value", config_key="X", actual_value="y", cause=cause)

        assert error.context["cause_type"] == "ValueError"
        assert error.to_dict()["cause"] == "nope"
