"""
Unit tests for datetime utilities.

Tests UTC normalization and ISO 8601 parsing of tool arguments.
"""

import pytest
from datetime import date, datetime, timedelta, timezone

from utils.datetime_utils import ensure_utc, parse_iso_date, parse_iso_datetime, utc_now


class TestUtcNow:
    """Test utc_now."""

    def test_utc_now_returns_timezone_aware_datetime(self):
        """Test that utc_now returns an aware datetime in UTC."""
        now = utc_now()

        assert now.tzinfo is not None
        assert now.utcoffset() == timedelta(0)


class TestEnsureUtc:
    """Test ensure_utc function."""

    def test_naive_datetime_is_assumed_utc(self):
        """Test that naive datetimes (as SQLite returns them) are tagged as UTC."""
        result = ensure_utc(datetime(2026, 3, 2, 14, 0))

        assert result == datetime(2026, 3, 2, 14, 0, tzinfo=timezone.utc)

    def test_other_timezones_are_converted(self):
        caracas = timezone(timedelta(hours=-4))
        result = ensure_utc(datetime(2026, 3, 2, 10, 0, tzinfo=caracas))

        assert result == datetime(2026, 3, 2, 14, 0, tzinfo=timezone.utc)
        assert result.tzinfo == timezone.utc

    def test_none(self):
        assert ensure_utc(None) is None


class TestParseIsoDatetime:
    """Test parse_iso_datetime."""

    @pytest.mark.parametrize("value", [
        "2026-02-01T09:00:00",
        "2026-02-01T09:00:00Z",
        "2026-02-01T09:00:00+00:00",
        "2026-02-01T05:00:00-04:00",
        " 2026-02-01T09:00:00 ",
    ])
    def test_accepted_forms(self, value):
        assert parse_iso_datetime(value) == datetime(2026, 2, 1, 9, 0, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value", ["", "   ", "mañana", "2026-13-01T09:00:00", None, 20260201])
    def test_invalid_values(self, value):
        with pytest.raises(ValueError):
            parse_iso_datetime(value)


class TestParseIsoDate:
    """Test parse_iso_date."""

    def test_plain_date(self):
        assert parse_iso_date("2026-02-01") == date(2026, 2, 1)

    def test_datetime_is_reduced_to_its_utc_date(self):
        assert parse_iso_date("2026-02-01T22:00:00-04:00") == date(2026, 2, 2)

    @pytest.mark.parametrize("value", ["01/02/2026", "", None, "ayer"])
    def test_invalid_values(self, value):
        with pytest.raises(ValueError):
            parse_iso_date(value)
