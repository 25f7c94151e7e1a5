"""Unit tests for occurrence addressing and duration helpers."""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from gcal_mcp.calendar.errors import UpstreamError
from gcal_mcp.calendar.instances import (
    estimate_duration,
    event_start,
    instance_id,
    is_all_day,
    project_end,
)

pytestmark = pytest.mark.unit

PDT = timezone(timedelta(hours=-7))


class TestInstanceId:
    def test_offset_start_normalized_to_utc(self):
        start = datetime(2024, 8, 15, 10, 0, tzinfo=PDT)
        assert instance_id("E1", start) == "E1_20240815T170000Z"

    def test_utc_start(self):
        assert instance_id("abc123", datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC)) == (
            "abc123_20240102T030405Z"
        )

    def test_all_day_start_uses_date_form(self):
        assert instance_id("E1", date(2024, 8, 15)) == "E1_20240815"

    def test_same_instant_in_different_offsets_yields_same_id(self):
        pacific = datetime(2024, 8, 15, 10, 0, tzinfo=ZoneInfo("America/Los_Angeles"))
        utc = datetime(2024, 8, 15, 17, 0, tzinfo=UTC)
        assert instance_id("E1", pacific) == instance_id("E1", utc)


class TestEventBoundaries:
    def test_event_start_applies_event_timezone(self):
        event = {
            "start": {"dateTime": "2024-08-01T16:00:00Z", "timeZone": "America/Los_Angeles"},
        }
        start = event_start(event)
        assert start == datetime(2024, 8, 1, 16, 0, tzinfo=UTC)
        assert start.utcoffset() == timedelta(hours=-7)

    def test_event_start_all_day(self):
        assert event_start({"start": {"date": "2024-08-01"}}) == date(2024, 8, 1)

    def test_is_all_day(self):
        assert is_all_day({"start": {"date": "2024-08-01"}}) is True
        assert is_all_day({"start": {"dateTime": "2024-08-01T09:00:00Z"}}) is False

    def test_missing_boundary_raises_upstream_error(self):
        with pytest.raises(UpstreamError, match="missing its start boundary"):
            event_start({"id": "E1"})

    def test_invalid_date_time_raises_upstream_error(self):
        with pytest.raises(UpstreamError, match="invalid dateTime"):
            event_start({"start": {"dateTime": "not-a-date"}})


class TestDuration:
    def test_timed_event_duration(self):
        event = {
            "start": {"dateTime": "2024-08-01T09:00:00-07:00"},
            "end": {"dateTime": "2024-08-01T10:30:00-07:00"},
        }
        assert estimate_duration(event) == timedelta(hours=1, minutes=30)

    def test_all_day_event_duration(self):
        event = {"start": {"date": "2024-08-01"}, "end": {"date": "2024-08-03"}}
        assert estimate_duration(event) == timedelta(days=2)

    def test_mixed_boundaries_rejected(self):
        event = {"start": {"date": "2024-08-01"}, "end": {"dateTime": "2024-08-01T10:00:00Z"}}
        with pytest.raises(UpstreamError, match="mixes all-day and timed"):
            estimate_duration(event)

    def test_project_end_preserves_length(self):
        new_start = datetime(2024, 9, 1, 9, 0, tzinfo=PDT)
        assert project_end(new_start, timedelta(minutes=45)) == datetime(
            2024, 9, 1, 9, 45, tzinfo=PDT
        )

    def test_project_end_for_dates(self):
        assert project_end(date(2024, 9, 1), timedelta(days=1)) == date(2024, 9, 2)
