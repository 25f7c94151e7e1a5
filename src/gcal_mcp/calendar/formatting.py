"""Plain-text rendering of Google Calendar resources for tool results."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any


def _boundary_text(boundary: Any) -> str:
    if isinstance(boundary, Mapping):
        return boundary.get("dateTime") or boundary.get("date") or "unspecified"
    return "unspecified"


def _reminders_text(reminders: Mapping[str, Any]) -> str:
    if reminders.get("useDefault"):
        return "Using default"
    overrides = reminders.get("overrides") or []
    rendered = ", ".join(
        f"{override.get('method')} {override.get('minutes')} minutes before"
        for override in overrides
        if isinstance(override, Mapping)
    )
    return rendered or "None"


def _meet_link(event: Mapping[str, Any]) -> str | None:
    conference = event.get("conferenceData")
    if not isinstance(conference, Mapping):
        return None
    for entry_point in conference.get("entryPoints") or []:
        if isinstance(entry_point, Mapping) and entry_point.get("entryPointType") == "video":
            return entry_point.get("uri")
    return None


def format_event(event: Mapping[str, Any]) -> str:
    lines = [f"{event.get('summary') or 'Untitled'} ({event.get('id') or 'no-id'})"]
    if event.get("location"):
        lines.append(f"Location: {event['location']}")
    if event.get("description"):
        lines.append(f"Description: {event['description']}")
    lines.append(f"Start: {_boundary_text(event.get('start'))}")
    lines.append(f"End: {_boundary_text(event.get('end'))}")
    attendees = event.get("attendees")
    if isinstance(attendees, list):
        rendered = ", ".join(
            f"{attendee.get('email') or 'no-email'} ({attendee.get('responseStatus') or 'unknown'})"
            for attendee in attendees
            if isinstance(attendee, Mapping)
        )
        lines.append(f"Attendees: {rendered}")
    if event.get("colorId"):
        lines.append(f"Color ID: {event['colorId']}")
    reminders = event.get("reminders")
    if isinstance(reminders, Mapping):
        lines.append(f"Reminders: {_reminders_text(reminders)}")
    meet_link = _meet_link(event)
    if meet_link:
        lines.append(f"Google Meet: {meet_link}")
    return "\n".join(lines) + "\n"


def format_event_list(events: Iterable[Mapping[str, Any]]) -> str:
    """Render events as blank-line separated blocks."""
    return "\n".join(format_event(event) for event in events)


def format_calendar_list(calendars: Iterable[Mapping[str, Any]]) -> str:
    return "\n".join(
        f"{calendar.get('summary') or 'Untitled'} ({calendar.get('id') or 'no-id'})"
        for calendar in calendars
    )


def format_colors(colors: Mapping[str, Any]) -> str:
    lines = ["Available event colors:"]
    for color_id, color in (colors.get("event") or {}).items():
        lines.append(
            f"Color ID: {color_id} - {color.get('background')} (background) / "
            f"{color.get('foreground')} (foreground)"
        )
    return "\n".join(lines)


def format_free_busy(response: Mapping[str, Any]) -> str:
    lines = [f"Free/busy information ({response.get('timeMin')} to {response.get('timeMax')}):"]
    for calendar_id, entry in (response.get("calendars") or {}).items():
        errors = entry.get("errors") or []
        if errors:
            reasons = ", ".join(str(error.get("reason", "unknown")) for error in errors)
            lines.append(f"{calendar_id}: unavailable ({reasons})")
            continue
        busy = entry.get("busy") or []
        if not busy:
            lines.append(f"{calendar_id}: free for the entire period")
            continue
        lines.append(f"{calendar_id}: busy during")
        lines.extend(f"  {slot.get('start')} - {slot.get('end')}" for slot in busy)
    return "\n".join(lines)
