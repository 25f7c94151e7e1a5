"""Tests for the calendar MCP tool surface.

Tools are registered on a capturing stand-in for FastMCP and invoked
directly; Google Calendar is a mocked ``httpx.AsyncClient``.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest
from fastmcp.server.auth import AccessToken

from gcal_mcp.calendar.google import GOOGLE_CALENDAR_API_BASE_URL
from gcal_mcp.calendar.module import TOOL_NAMES, CalendarModule

pytestmark = pytest.mark.unit

EVENTS_URL = f"{GOOGLE_CALENDAR_API_BASE_URL}/calendars/primary/events"

MASTER: dict[str, Any] = {
    "id": "E1",
    "summary": "Weekly sync",
    "start": {"dateTime": "2099-08-01T09:00:00-07:00", "timeZone": "America/Los_Angeles"},
    "end": {"dateTime": "2099-08-01T09:30:00-07:00", "timeZone": "America/Los_Angeles"},
    "recurrence": ["RRULE:FREQ=WEEKLY;COUNT=20"],
}


class _ToolCapture:
    """Collects functions registered through ``mcp.tool(name=...)``."""

    def __init__(self) -> None:
        self.tools: dict[str, Callable[..., Any]] = {}

    def tool(self, *, name: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
            self.tools[name] = fn
            return fn

        return decorator


def _token() -> AccessToken:
    return AccessToken(token="ya29.caller-token", client_id="client-1", scopes=[])


@pytest.fixture
def tools(mock_http_client) -> dict[str, Callable[..., Any]]:
    capture = _ToolCapture()
    CalendarModule(http_client=mock_http_client, token_provider=_token).register_tools(capture)
    return capture.tools


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


class TestRegistration:
    def test_all_tools_registered(self, tools):
        assert set(tools) == set(TOOL_NAMES)
        assert len(TOOL_NAMES) == 8


# ---------------------------------------------------------------------------
# update-event / delete-event
# ---------------------------------------------------------------------------


class TestUpdateEventTool:
    async def test_all_scope_update(self, tools, mock_http_client, google_response):
        mock_http_client.request.side_effect = [
            google_response(200, json_body=MASTER),
            google_response(200, method="PATCH", json_body={**MASTER, "summary": "Standup"}),
        ]

        result = await tools["update-event"](
            calendar_id="primary",
            event_id="E1",
            time_zone="America/Los_Angeles",
            summary="Standup",
        )

        assert result["status"] == "updated"
        assert result["modification_scope"] == "all"
        assert result["event"]["summary"] == "Standup"
        assert result["text"] == "Event updated: Standup (E1)"
        headers = mock_http_client.request.call_args.kwargs["headers"]
        assert headers == {"Authorization": "Bearer ya29.caller-token"}

    async def test_future_scope_update_returns_new_series(
        self, tools, mock_http_client, google_response
    ):
        mock_http_client.request.side_effect = [
            google_response(200, json_body=MASTER),
            google_response(200, json_body=MASTER),
            google_response(200, method="PATCH", json_body=MASTER),
            google_response(200, method="POST", json_body={"id": "NEW1", "summary": "Moved"}),
        ]

        result = await tools["update-event"](
            calendar_id="primary",
            event_id="E1",
            time_zone="America/Los_Angeles",
            summary="Moved",
            modification_scope="future",
            future_start_date="2099-09-01T09:00:00-07:00",
        )

        assert result["event"]["id"] == "NEW1"
        assert result["modification_scope"] == "future"

    async def test_validation_failure_returned_without_calling_google(
        self, tools, mock_http_client
    ):
        result = await tools["update-event"](
            calendar_id="primary",
            event_id="E1",
            modification_scope="single",
        )

        assert result["status"] == "error"
        assert result["error_type"] == "CalendarValidationError"
        assert result["calendar_id"] == "primary"
        assert {error["field"] for error in result["errors"]} == {
            "originalStartTime",
            "timeZone",
        }
        mock_http_client.request.assert_not_called()

    async def test_scope_mismatch_returned_as_payload(
        self, tools, mock_http_client, google_response
    ):
        standalone = {key: value for key, value in MASTER.items() if key != "recurrence"}
        mock_http_client.request.side_effect = [google_response(200, json_body=standalone)]

        result = await tools["update-event"](
            calendar_id="primary",
            event_id="E1",
            time_zone="UTC",
            modification_scope="future",
            future_start_date="2099-09-01T09:00:00-07:00",
        )

        assert result["error_type"] == "ScopeMismatchError"
        assert len(mock_http_client.request.call_args_list) == 1

    async def test_series_split_failure_reports_truncated_series(
        self, tools, mock_http_client, google_response
    ):
        mock_http_client.request.side_effect = [
            google_response(200, json_body=MASTER),
            google_response(200, json_body=MASTER),
            google_response(200, method="PATCH", json_body=MASTER),
            google_response(
                500, method="POST", json_body={"error": {"code": 500, "message": "Backend Error"}}
            ),
        ]

        result = await tools["update-event"](
            calendar_id="primary",
            event_id="E1",
            time_zone="America/Los_Angeles",
            modification_scope="future",
            future_start_date="2099-09-01T09:00:00-07:00",
        )

        assert result["error_type"] == "SeriesSplitError"
        assert result["status_code"] == 500
        assert result["truncated_event_id"] == "E1"
        assert result["previous_recurrence"] == ["RRULE:FREQ=WEEKLY;COUNT=20"]


class TestDeleteEventTool:
    async def test_delete_all(self, tools, mock_http_client, google_response):
        mock_http_client.request.side_effect = [
            google_response(200, json_body=MASTER),
            google_response(204, method="DELETE"),
        ]

        result = await tools["delete-event"](calendar_id="primary", event_id="E1")

        assert result == {
            "status": "deleted",
            "calendar_id": "primary",
            "event_id": "E1",
            "modification_scope": "all",
            "text": "Event deleted successfully",
        }

    async def test_delete_future_returns_truncated_series(
        self, tools, mock_http_client, google_response
    ):
        mock_http_client.request.side_effect = [
            google_response(200, json_body=MASTER),
            google_response(200, json_body=MASTER),
            google_response(200, method="PATCH", json_body=MASTER),
        ]

        result = await tools["delete-event"](
            calendar_id="primary",
            event_id="E1",
            modification_scope="future",
            future_start_date="2099-09-01T09:00:00-07:00",
        )

        assert result["status"] == "deleted"
        assert result["event"]["id"] == "E1"
        assert "Future occurrences of E1 deleted" in result["text"]

    async def test_missing_event_payload(self, tools, mock_http_client, google_response):
        mock_http_client.request.side_effect = [google_response(404, json_body={})]

        result = await tools["delete-event"](calendar_id="primary", event_id="E404")

        assert result["error_type"] == "EventNotFoundError"
        assert result["error"] == "Event 'E404' not found in calendar 'primary'"


# ---------------------------------------------------------------------------
# Read-side tools
# ---------------------------------------------------------------------------


class TestReadTools:
    async def test_list_events_merges_calendars_by_start(
        self, tools, mock_http_client, google_response
    ):
        mock_http_client.request.side_effect = [
            google_response(
                200,
                json_body={
                    "items": [{"id": "late", "start": {"dateTime": "2024-08-01T12:00:00Z"}}]
                },
            ),
            google_response(
                200,
                json_body={
                    "items": [
                        {"id": "early", "start": {"dateTime": "2024-08-01T09:00:00-02:00"}},
                        {"id": "all-day", "start": {"date": "2024-08-01"}},
                    ]
                },
            ),
        ]

        result = await tools["list-events"](
            calendar_id=["primary", "work@example.com"],
            time_min="2024-08-01T00:00:00Z",
            time_max="2024-08-02T00:00:00Z",
        )

        assert result["status"] == "ok"
        assert [event["id"] for event in result["events"]] == ["all-day", "early", "late"]

    async def test_list_events_empty(self, tools, mock_http_client, google_response):
        mock_http_client.request.return_value = google_response(200, json_body={"items": []})

        result = await tools["list-events"](calendar_id="primary")

        assert result["events"] == []
        assert result["text"] == "No events found."

    async def test_search_events_passes_query(self, tools, mock_http_client, google_response):
        mock_http_client.request.return_value = google_response(200, json_body={"items": []})

        await tools["search-events"](calendar_id="primary", query="standup")

        assert mock_http_client.request.call_args.kwargs["params"]["q"] == "standup"

    async def test_list_calendars(self, tools, mock_http_client, google_response):
        mock_http_client.request.return_value = google_response(
            200, json_body={"items": [{"id": "primary", "summary": "Me"}]}
        )

        result = await tools["list-calendars"]()

        assert result["calendars"] == [{"id": "primary", "summary": "Me"}]
        assert result["text"] == "Me (primary)"

    async def test_free_busy_body_uses_api_names(self, tools, mock_http_client, google_response):
        mock_http_client.request.return_value = google_response(
            200, method="POST", json_body={"calendars": {}}
        )

        result = await tools["get-freebusy"](
            time_min="2024-08-01T00:00:00Z",
            time_max="2024-08-02T00:00:00Z",
            items=[{"id": "someone@example.com"}],
            group_expansion_max=10,
        )

        assert result["status"] == "ok"
        body = mock_http_client.request.call_args.kwargs["json"]
        assert body["items"] == [{"id": "someone@example.com"}]
        assert body["groupExpansionMax"] == 10
        assert "timeMin" in body

    async def test_create_event(self, tools, mock_http_client, google_response):
        mock_http_client.request.return_value = google_response(
            200, method="POST", json_body={"id": "NEW", "summary": "Planning"}
        )

        result = await tools["create-event"](
            calendar_id="primary",
            summary="Planning",
            start="2024-08-15T10:00:00Z",
            end="2024-08-15T11:00:00Z",
            time_zone="UTC",
            send_updates="none",
        )

        assert result["status"] == "created"
        assert result["text"] == "Event created: Planning (NEW)"
        assert mock_http_client.request.call_args.kwargs["params"] == {"sendUpdates": "none"}


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


class TestAuthentication:
    async def test_missing_token_returns_auth_error(self, mock_http_client):
        capture = _ToolCapture()
        CalendarModule(http_client=mock_http_client, token_provider=lambda: None).register_tools(
            capture
        )

        result = await capture.tools["list-calendars"]()

        assert result["status"] == "error"
        assert result["error_type"] == "CalendarAuthError"
        mock_http_client.request.assert_not_called()
