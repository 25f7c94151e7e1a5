"""Occurrence addressing and event-length helpers."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, date, datetime, timedelta
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from gcal_mcp.calendar.errors import UpstreamError


def _parse_google_datetime(value: str) -> datetime:
    normalized = value.strip()
    if normalized.endswith("Z"):
        normalized = f"{normalized[:-1]}+00:00"
    try:
        parsed = datetime.fromisoformat(normalized)
    except ValueError as exc:
        raise UpstreamError(
            status_code=None, message=f"Google Calendar returned an invalid dateTime: {value}"
        ) from exc
    return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)


def _parse_event_boundary(event: Mapping[str, Any], key: str) -> date | datetime:
    boundary = event.get(key)
    if not isinstance(boundary, Mapping):
        raise UpstreamError(
            status_code=None, message=f"Google Calendar event is missing its {key} boundary"
        )

    date_time = boundary.get("dateTime")
    if isinstance(date_time, str) and date_time.strip():
        parsed = _parse_google_datetime(date_time)
        timezone = boundary.get("timeZone")
        if isinstance(timezone, str) and timezone.strip():
            try:
                return parsed.astimezone(ZoneInfo(timezone.strip()))
            except ZoneInfoNotFoundError:
                return parsed
        return parsed

    date_value = boundary.get("date")
    if isinstance(date_value, str) and date_value.strip():
        try:
            return date.fromisoformat(date_value.strip())
        except ValueError as exc:
            raise UpstreamError(
                status_code=None,
                message=f"Google Calendar returned an invalid date value: {date_value}",
            ) from exc

    raise UpstreamError(
        status_code=None,
        message=f"Google Calendar event {key} has neither dateTime nor date",
    )


def event_start(event: Mapping[str, Any]) -> date | datetime:
    """Start of ``event``: a ``date`` for all-day events, an aware ``datetime`` otherwise."""
    return _parse_event_boundary(event, "start")


def is_all_day(event: Mapping[str, Any]) -> bool:
    start = event.get("start")
    return isinstance(start, Mapping) and not start.get("dateTime") and bool(start.get("date"))


def instance_id(series_id: str, original_start: date | datetime) -> str:
    """Identifier of the occurrence of ``series_id`` originally scheduled at ``original_start``.

    Timed occurrences use the UTC ``YYYYMMDDTHHMMSSZ`` form, all-day
    occurrences ``YYYYMMDD``.
    """
    if isinstance(original_start, datetime):
        if original_start.tzinfo is None:
            original_start = original_start.replace(tzinfo=UTC)
        suffix = original_start.astimezone(UTC).strftime("%Y%m%dT%H%M%SZ")
    else:
        suffix = original_start.strftime("%Y%m%d")
    return f"{series_id}_{suffix}"


def estimate_duration(event: Mapping[str, Any]) -> timedelta:
    start = _parse_event_boundary(event, "start")
    end = _parse_event_boundary(event, "end")
    if isinstance(start, datetime) != isinstance(end, datetime):
        raise UpstreamError(
            status_code=None,
            message="Google Calendar event mixes all-day and timed boundaries",
        )
    return end - start


def project_end(new_start: date | datetime, duration: timedelta) -> date | datetime:
    return new_start + duration
