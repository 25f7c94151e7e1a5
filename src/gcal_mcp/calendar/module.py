"""MCP tool surface for Google Calendar.

Each tool validates its arguments, calls Google Calendar with the bearer token
the caller authenticated with, and returns a structured result plus a ``text``
rendering. Domain failures are returned as structured error payloads rather
than raised.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, time
from typing import Any

import httpx
from fastmcp.server.auth import AccessToken
from fastmcp.server.dependencies import get_access_token
from pydantic.alias_generators import to_camel

from gcal_mcp.calendar.errors import CalendarAuthError, CalendarError, build_error_payload
from gcal_mcp.calendar.formatting import (
    format_calendar_list,
    format_colors,
    format_event_list,
    format_free_busy,
)
from gcal_mcp.calendar.google import GoogleCalendarClient
from gcal_mcp.calendar.instances import event_start
from gcal_mcp.calendar.models import (
    CreateEventArguments,
    DeleteEventCommand,
    FreeBusyArguments,
    ListEventsArguments,
    SearchEventsArguments,
    UpdateEventCommand,
    build_event_body,
    parse_arguments,
)
from gcal_mcp.calendar.resolver import RecurringEventResolver
from gcal_mcp.config import GoogleApiConfig
from gcal_mcp.core.logging import reset_tool_context, set_tool_context

logger = logging.getLogger(__name__)

TOOL_NAMES = (
    "list-calendars",
    "list-events",
    "search-events",
    "list-colors",
    "create-event",
    "update-event",
    "delete-event",
    "get-freebusy",
)


def _present(arguments: dict[str, Any]) -> dict[str, Any]:
    """Drop unset arguments and key the rest by their Calendar API names."""
    return {to_camel(key): value for key, value in arguments.items() if value is not None}


def _start_sort_key(event: dict[str, Any]) -> datetime:
    start = event_start(event)
    if isinstance(start, datetime):
        return start.astimezone(UTC)
    return datetime.combine(start, time.min, tzinfo=UTC)


class CalendarModule:
    """Registers the Google Calendar tools on a FastMCP server."""

    def __init__(
        self,
        google_config: GoogleApiConfig | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        token_provider: Callable[[], AccessToken | None] = get_access_token,
    ) -> None:
        self._google_config = google_config or GoogleApiConfig()
        self._http_client = http_client
        self._token_provider = token_provider

    @property
    def name(self) -> str:
        return "calendar"

    def _client(self) -> GoogleCalendarClient:
        access_token = self._token_provider()
        if access_token is None or not access_token.token:
            raise CalendarAuthError(
                "Authentication required: call this tool with a Google OAuth bearer token"
            )
        return GoogleCalendarClient(
            access_token.token,
            self._http_client,
            base_url=self._google_config.api_base_url,
            timeout=self._google_config.timeout_seconds,
        )

    async def _run(
        self,
        tool_name: str,
        calendar_id: Any,
        operation: Callable[[], Awaitable[dict[str, Any]]],
    ) -> dict[str, Any]:
        context = set_tool_context(tool_name)
        try:
            return await operation()
        except CalendarError as exc:
            logger.error("%s failed: %s", tool_name, exc, exc_info=True)
            return build_error_payload(
                exc, calendar_id=calendar_id if isinstance(calendar_id, str) else None
            )
        finally:
            reset_tool_context(context)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def list_calendars(self) -> dict[str, Any]:
        async with self._client() as client:
            calendars = await client.list_calendars()
        return {"status": "ok", "calendars": calendars, "text": format_calendar_list(calendars)}

    async def list_events(self, arguments: dict[str, Any]) -> dict[str, Any]:
        args = parse_arguments(ListEventsArguments, arguments)
        events: list[dict[str, Any]] = []
        async with self._client() as client:
            for calendar_id in args.calendar_ids:
                events.extend(
                    await client.list_events(
                        calendar_id, time_min=args.time_min, time_max=args.time_max
                    )
                )
        if len(args.calendar_ids) > 1:
            events.sort(key=_start_sort_key)
        return {
            "status": "ok",
            "calendar_ids": args.calendar_ids,
            "events": events,
            "text": format_event_list(events) if events else "No events found.",
        }

    async def search_events(self, arguments: dict[str, Any]) -> dict[str, Any]:
        args = parse_arguments(SearchEventsArguments, arguments)
        async with self._client() as client:
            events = await client.list_events(
                args.calendar_id,
                time_min=args.time_min,
                time_max=args.time_max,
                query=args.query,
            )
        return {
            "status": "ok",
            "calendar_id": args.calendar_id,
            "events": events,
            "text": format_event_list(events) if events else "No events found.",
        }

    async def list_colors(self) -> dict[str, Any]:
        async with self._client() as client:
            colors = await client.list_colors()
        return {"status": "ok", "colors": colors, "text": format_colors(colors)}

    async def create_event(self, arguments: dict[str, Any]) -> dict[str, Any]:
        args = parse_arguments(CreateEventArguments, arguments)
        async with self._client() as client:
            event = await client.insert_event(
                args.calendar_id, build_event_body(args), send_updates=args.send_updates
            )
        return {
            "status": "created",
            "calendar_id": args.calendar_id,
            "event": event,
            "text": f"Event created: {event.get('summary')} ({event.get('id')})",
        }

    async def update_event(self, arguments: dict[str, Any]) -> dict[str, Any]:
        command = parse_arguments(UpdateEventCommand, arguments)
        async with self._client() as client:
            event = await RecurringEventResolver(client).update(command)
        return {
            "status": "updated",
            "calendar_id": command.calendar_id,
            "modification_scope": str(command.modification_scope),
            "event": event,
            "text": f"Event updated: {event.get('summary')} ({event.get('id')})",
        }

    async def delete_event(self, arguments: dict[str, Any]) -> dict[str, Any]:
        command = parse_arguments(DeleteEventCommand, arguments)
        async with self._client() as client:
            truncated = await RecurringEventResolver(client).delete(command)
        result: dict[str, Any] = {
            "status": "deleted",
            "calendar_id": command.calendar_id,
            "event_id": command.event_id,
            "modification_scope": str(command.modification_scope),
        }
        if truncated is not None:
            result["event"] = truncated
            result["text"] = (
                f"Future occurrences of {command.event_id} deleted; the series now ends "
                f"before {command.future_start_date.isoformat()}"
            )
        else:
            result["text"] = "Event deleted successfully"
        return result

    async def get_free_busy(self, arguments: dict[str, Any]) -> dict[str, Any]:
        args = parse_arguments(FreeBusyArguments, arguments)
        body = args.model_dump(by_alias=True, exclude_none=True, mode="json")
        async with self._client() as client:
            response = await client.query_free_busy(body)
        return {"status": "ok", "freebusy": response, "text": format_free_busy(response)}

    # ------------------------------------------------------------------
    # Tool registration
    # ------------------------------------------------------------------

    def register_tools(self, mcp: Any) -> None:
        """Register the calendar tools on ``mcp``."""
        module = self

        @mcp.tool(name="list-calendars")
        async def list_calendars() -> dict[str, Any]:
            """List all calendars available to the authenticated user."""
            return await module._run("list-calendars", None, module.list_calendars)

        @mcp.tool(name="list-events")
        async def list_events(
            calendar_id: str | list[str],
            time_min: str | None = None,
            time_max: str | None = None,
        ) -> dict[str, Any]:
            """List events from one or more calendars.

            ``calendar_id`` is a single id, a list of up to 50 ids or a JSON
            encoded list. Times are ISO 8601 with a ``Z`` or offset suffix.
            """
            arguments = _present(
                {"calendar_id": calendar_id, "time_min": time_min, "time_max": time_max}
            )
            return await module._run(
                "list-events", calendar_id, lambda: module.list_events(arguments)
            )

        @mcp.tool(name="search-events")
        async def search_events(
            calendar_id: str,
            query: str,
            time_min: str | None = None,
            time_max: str | None = None,
        ) -> dict[str, Any]:
            """Search events in a calendar by free-text query."""
            arguments = _present(
                {
                    "calendar_id": calendar_id,
                    "query": query,
                    "time_min": time_min,
                    "time_max": time_max,
                }
            )
            return await module._run(
                "search-events", calendar_id, lambda: module.search_events(arguments)
            )

        @mcp.tool(name="list-colors")
        async def list_colors() -> dict[str, Any]:
            """List the color ids available for calendar events."""
            return await module._run("list-colors", None, module.list_colors)

        @mcp.tool(name="create-event")
        async def create_event(
            calendar_id: str,
            summary: str,
            start: str,
            end: str,
            time_zone: str,
            description: str | None = None,
            location: str | None = None,
            attendees: list[dict[str, Any]] | None = None,
            color_id: str | None = None,
            reminders: dict[str, Any] | None = None,
            recurrence: list[str] | None = None,
            send_updates: str | None = None,
        ) -> dict[str, Any]:
            """Create a calendar event.

            ``recurrence`` takes RRULE lines such as ``RRULE:FREQ=WEEKLY;COUNT=5``.
            """
            arguments = _present(
                {
                    "calendar_id": calendar_id,
                    "summary": summary,
                    "start": start,
                    "end": end,
                    "time_zone": time_zone,
                    "description": description,
                    "location": location,
                    "attendees": attendees,
                    "color_id": color_id,
                    "reminders": reminders,
                    "recurrence": recurrence,
                    "send_updates": send_updates,
                }
            )
            return await module._run(
                "create-event", calendar_id, lambda: module.create_event(arguments)
            )

        @mcp.tool(name="update-event")
        async def update_event(
            calendar_id: str,
            event_id: str,
            time_zone: str | None = None,
            summary: str | None = None,
            description: str | None = None,
            start: str | None = None,
            end: str | None = None,
            location: str | None = None,
            attendees: list[dict[str, Any]] | None = None,
            color_id: str | None = None,
            reminders: dict[str, Any] | None = None,
            recurrence: list[str] | None = None,
            modification_scope: str = "all",
            original_start_time: str | None = None,
            future_start_date: str | None = None,
            send_updates: str | None = None,
        ) -> dict[str, Any]:
            """Update an event, optionally scoped within a recurring series.

            modification_scope:
            - ``all`` (default): change the event or the whole series.
            - ``single``: change one occurrence; requires ``original_start_time``.
            - ``future``: change this and all later occurrences; requires
              ``future_start_date``. The series is split in two and the split
              is not atomic.

            ``time_zone`` is required.
            """
            arguments = _present(
                {
                    "calendar_id": calendar_id,
                    "event_id": event_id,
                    "time_zone": time_zone,
                    "summary": summary,
                    "description": description,
                    "start": start,
                    "end": end,
                    "location": location,
                    "attendees": attendees,
                    "color_id": color_id,
                    "reminders": reminders,
                    "recurrence": recurrence,
                    "modification_scope": modification_scope,
                    "original_start_time": original_start_time,
                    "future_start_date": future_start_date,
                    "send_updates": send_updates,
                }
            )
            return await module._run(
                "update-event", calendar_id, lambda: module.update_event(arguments)
            )

        @mcp.tool(name="delete-event")
        async def delete_event(
            calendar_id: str,
            event_id: str,
            modification_scope: str = "all",
            original_start_time: str | None = None,
            future_start_date: str | None = None,
            send_updates: str | None = None,
        ) -> dict[str, Any]:
            """Delete an event, one occurrence of a series, or a series from a date on.

            Scope ``future`` ends the series just before ``future_start_date``
            and returns the truncated series.
            """
            arguments = _present(
                {
                    "calendar_id": calendar_id,
                    "event_id": event_id,
                    "modification_scope": modification_scope,
                    "original_start_time": original_start_time,
                    "future_start_date": future_start_date,
                    "send_updates": send_updates,
                }
            )
            return await module._run(
                "delete-event", calendar_id, lambda: module.delete_event(arguments)
            )

        @mcp.tool(name="get-freebusy")
        async def get_freebusy(
            time_min: str,
            time_max: str,
            items: list[dict[str, Any]],
            time_zone: str | None = None,
            group_expansion_max: int | None = None,
            calendar_expansion_max: int | None = None,
        ) -> dict[str, Any]:
            """Query busy intervals for calendars identified by e-mail address."""
            arguments = _present(
                {
                    "time_min": time_min,
                    "time_max": time_max,
                    "items": items,
                    "time_zone": time_zone,
                    "group_expansion_max": group_expansion_max,
                    "calendar_expansion_max": calendar_expansion_max,
                }
            )
            return await module._run("get-freebusy", None, lambda: module.get_free_busy(arguments))
