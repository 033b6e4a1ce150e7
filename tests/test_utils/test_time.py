"""Tests for timestamp helpers."""

from datetime import datetime, timezone

import pytest

from status_digest.utils.time import days_ago, is_after, parse_timestamp, to_iso

SINCE = datetime(2026, 10, 11, tzinfo=timezone.utc)


class TestParseTimestamp:
    """Test tracker timestamp formats."""

    def test_bugzilla_format(self) -> None:
        """Test the Z suffix form."""
        assert parse_timestamp("2026-10-12T08:00:00Z") == datetime(
            2026, 10, 12, 8, tzinfo=timezone.utc
        )

    def test_jira_format(self) -> None:
        """Test the compact offset form with milliseconds."""
        parsed = parse_timestamp("2026-10-12T10:00:00.000+0200")
        assert parsed.astimezone(timezone.utc).hour == 8

    def test_plain_date(self) -> None:
        """Test that naive dates are UTC."""
        assert parse_timestamp("2026-10-12").tzinfo == timezone.utc

    def test_invalid(self) -> None:
        """Test that garbage raises ValueError."""
        with pytest.raises(ValueError, match="Unable to parse timestamp 'soon'"):
            parse_timestamp("soon")


class TestWindow:
    """Test window helpers."""

    def test_is_after(self) -> None:
        """Test inclusive comparison and tolerance of bad input."""
        assert is_after("2026-10-11T00:00:00Z", SINCE)
        assert not is_after("2026-10-10T23:59:59Z", SINCE)
        assert not is_after(None, SINCE)
        assert not is_after("not a date", SINCE)

    def test_days_ago_and_iso(self) -> None:
        """Test computing and formatting the window start."""
        now = datetime(2026, 10, 19, 12, 30, tzinfo=timezone.utc)
        assert to_iso(days_ago(8, now=now)) == "2026-10-11T12:30:00Z"
