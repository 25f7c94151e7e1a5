"""Unit tests for event-type classification."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from gcal_mcp.calendar.classifier import (
    ClassifiedEvent,
    EventType,
    classify_event,
    event_type_of,
)
from gcal_mcp.calendar.errors import EventNotFoundError, UpstreamError
from gcal_mcp.calendar.google import GoogleCalendarClient

pytestmark = pytest.mark.unit


def _fetcher(**kwargs) -> MagicMock:
    client = MagicMock(spec=GoogleCalendarClient)
    client.get_event = AsyncMock(**kwargs)
    return client


class TestEventTypeOf:
    def test_recurrence_list_means_recurring(self):
        assert event_type_of({"id": "E1", "recurrence": ["RRULE:FREQ=DAILY"]}) is (
            EventType.recurring
        )

    def test_recurrence_wins_over_back_reference(self):
        event = {"id": "E1", "recurrence": ["RRULE:FREQ=DAILY"], "recurringEventId": "E0"}
        assert event_type_of(event) is EventType.recurring

    def test_back_reference_means_instance(self):
        event = {"id": "E1_20240815T170000Z", "recurringEventId": "E1"}
        assert event_type_of(event) is EventType.instance

    @pytest.mark.parametrize(
        "event",
        [{"id": "E1"}, {"id": "E1", "recurrence": []}, {"id": "E1", "recurringEventId": " "}],
    )
    def test_neither_means_single(self, event):
        assert event_type_of(event) is EventType.single


class TestClassifiedEvent:
    def test_series_id_per_type(self):
        master = ClassifiedEvent(
            EventType.recurring, {"id": "E1", "recurrence": ["RRULE:FREQ=DAILY"]}
        )
        occurrence = ClassifiedEvent(
            EventType.instance, {"id": "E1_20240815T170000Z", "recurringEventId": "E1"}
        )
        standalone = ClassifiedEvent(EventType.single, {"id": "S1"})

        assert master.series_id == "E1"
        assert occurrence.series_id == "E1"
        assert standalone.series_id is None


class TestClassifyEvent:
    async def test_fetches_and_classifies(self):
        client = _fetcher(return_value={"id": "E1", "recurrence": ["RRULE:FREQ=WEEKLY"]})

        classified = await classify_event(client, "primary", "E1")

        client.get_event.assert_awaited_once_with("primary", "E1")
        assert classified.event_type is EventType.recurring
        assert classified.event["id"] == "E1"

    async def test_missing_event_raises_not_found(self):
        client = _fetcher(return_value=None)

        with pytest.raises(EventNotFoundError, match="Event 'E404' not found in calendar 'primary'"):
            await classify_event(client, "primary", "E404")

    async def test_upstream_failure_propagates(self):
        client = _fetcher(side_effect=UpstreamError(status_code=403, message="Forbidden"))

        with pytest.raises(UpstreamError) as exc_info:
            await classify_event(client, "primary", "E1")
        assert exc_info.value.status_code == 403
