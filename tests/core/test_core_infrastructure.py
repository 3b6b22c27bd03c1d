"""
Tests for core infrastructure: clocks and the exception taxonomy.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from core.clock import CachedClock, MockClock, SystemClock
from core.exceptions import (
    ConfigurationError,
    DecodeError,
    FieldParseError,
    NormalizationError,
    PersistenceError,
    RefreshError,
    SchedulerRegistrationError,
    Severity,
    TransportError,
    UpstreamError,
    UpstreamStatusError,
)


# ============================================================
# CLOCKS
# ============================================================

class TestSystemClock:

    def test_now_is_utc(self):
        now = SystemClock().now()
        assert now.tzinfo is not None
        assert now.utcoffset() == timedelta(0)


class TestMockClock:

    def test_advance_and_set_time(self):
        start = datetime(2024, 1, 1, tzinfo=timezone.utc)
        clock = MockClock(initial_time=start)

        clock.advance(seconds=90)
        assert clock.now() == start + timedelta(seconds=90)

        clock.set_time(datetime(2025, 1, 1))
        assert clock.now() == datetime(2025, 1, 1, tzinfo=timezone.utc)

    def test_freeze_restores_time(self):
        start = datetime(2024, 1, 1, tzinfo=timezone.utc)
        clock = MockClock(initial_time=start)

        with clock.freeze(datetime(2030, 6, 1, tzinfo=timezone.utc)):
            assert clock.now().year == 2030

        assert clock.now() == start


class TestCachedClock:

    def test_rejects_non_positive_granularity(self):
        with pytest.raises(ValueError):
            CachedClock(granularity_seconds=0)

    def test_now_returns_cached_value_until_refresh(self):
        source = MockClock(initial_time=datetime(2024, 1, 1, tzinfo=timezone.utc))
        clock = CachedClock(granularity_seconds=1, source=source)

        source.advance(seconds=30)
        assert clock.now() == datetime(2024, 1, 1, tzinfo=timezone.utc)

        clock.refresh()
        assert clock.now() == datetime(2024, 1, 1, 0, 0, 30, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_background_task_refreshes_value(self):
        source = MockClock(initial_time=datetime(2024, 1, 1, tzinfo=timezone.utc))
        clock = CachedClock(granularity_seconds=0.01, source=source)

        clock.start()
        assert clock.is_running
        source.advance(seconds=5)
        await asyncio.sleep(0.05)

        assert clock.now() == source.now()

        await clock.stop()
        assert not clock.is_running

    @pytest.mark.asyncio
    async def test_stopped_clock_keeps_last_value(self):
        source = MockClock(initial_time=datetime(2024, 1, 1, tzinfo=timezone.utc))
        clock = CachedClock(granularity_seconds=0.01, source=source)

        clock.start()
        await clock.stop()
        frozen = clock.now()

        source.advance(seconds=60)
        await asyncio.sleep(0.03)
        assert clock.now() == frozen


# ============================================================
# EXCEPTIONS
# ============================================================

class TestExceptionHierarchy:

    def test_every_error_is_a_refresh_error(self):
        errors = [
            ConfigurationError("bad"),
            SchedulerRegistrationError("bad cron", schedule="x"),
            TransportError("timeout", source="earnings"),
            UpstreamStatusError(source="equities", status_code=500, body=""),
            DecodeError("bad json", source="earnings"),
            FieldParseError("bad date", source="equities", field_name="dividendDate", raw_value="x"),
            PersistenceError("down", operation="connect"),
        ]
        for error in errors:
            assert isinstance(error, RefreshError)

        assert isinstance(errors[2], UpstreamError)
        assert isinstance(errors[3], UpstreamError)
        assert isinstance(errors[4], NormalizationError)
        assert isinstance(errors[5], NormalizationError)

    def test_only_scheduler_registration_is_fatal(self):
        assert SchedulerRegistrationError("bad cron", schedule="x").is_fatal
        assert SchedulerRegistrationError("bad cron", schedule="x").severity == Severity.CRITICAL
        assert not PersistenceError("down", operation="connect").is_fatal
        assert not TransportError("timeout", source="earnings").is_fatal

    def test_status_error_message_includes_body(self):
        error = UpstreamStatusError(source="earnings", status_code=503, body="maintenance")

        assert str(error) == "external request failed with status 503: maintenance"
        assert error.status_code == 503
        assert error.is_server_error()
        assert error.context["source"] == "earnings"

    def test_status_error_without_body(self):
        error = UpstreamStatusError(source="equities", status_code=404, body="")

        assert str(error) == "external request failed with status 404"
        assert not error.is_server_error()

    def test_field_parse_error_context(self):
        error = FieldParseError(
            "invalid dividend date", source="equities",
            field_name="dividendDate", raw_value="yesterday",
        )

        assert error.field_name == "dividendDate"
        assert error.raw_value == "yesterday"
        assert error.context == {"field": "dividendDate", "raw_value": "yesterday", "source": "equities"}

    def test_cause_is_recorded_and_serialized(self):
        cause = ValueError("boom")
        error = PersistenceError("write failed", operation="upsert", cause=cause)

        data = error.to_dict()
        assert data["error_type"] == "PersistenceError"
        assert data["severity"] == "high"
        assert data["context"]["operation"] == "upsert"
        assert data["context"]["cause_type"] == "ValueError"
        assert data["context"]["cause_message"] == "boom"
