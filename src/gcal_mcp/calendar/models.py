"""Tool argument models and Google Calendar request-body builders.

Caller arguments use the camelCase names of the Google Calendar API
(``calendarId``, ``timeZone``, ``sendUpdates``); the snake_case field names
are accepted as well. All date-time arguments must carry an explicit ``Z`` or
``+HH:MM`` designator.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from datetime import UTC, datetime
from enum import StrEnum
from typing import Annotated, Any, Literal, TypeVar
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import pydantic
from pydantic import (
    AwareDatetime,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
)
from pydantic.alias_generators import to_camel

from gcal_mcp.calendar.errors import CalendarValidationError

ISO_DATETIME_WITH_OFFSET = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(Z|[+-]\d{2}:\d{2})$")
ISO_DATETIME_MESSAGE = "Must be ISO format with timezone (e.g., 2024-01-01T00:00:00Z)"
RECURRENCE_LINE_PREFIXES = ("RRULE:", "EXRULE:", "RDATE", "EXDATE")
MAX_CALENDARS_PER_REQUEST = 50
MAX_GROUP_EXPANSION = 100
MAX_CALENDAR_EXPANSION = 50
_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

ArgsT = TypeVar("ArgsT", bound=BaseModel)


def _require_offset_designator(value: Any) -> Any:
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not ISO_DATETIME_WITH_OFFSET.match(value.strip()):
        raise ValueError(ISO_DATETIME_MESSAGE)
    return value.strip()


IsoDateTime = Annotated[AwareDatetime, BeforeValidator(_require_offset_designator)]


def _ensure_valid_timezone(value: str) -> str:
    normalized = value.strip()
    if not normalized:
        raise ValueError("timeZone must be a non-empty IANA timezone")
    try:
        ZoneInfo(normalized)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"timeZone must be a valid IANA timezone: {value}") from exc
    return normalized


def _normalize_recurrence(rules: list[str]) -> list[str]:
    normalized_rules: list[str] = []
    for raw_rule in rules:
        rule = raw_rule.strip()
        if not rule:
            raise ValueError("recurrence rules must be non-empty strings")
        if "\n" in rule or "\r" in rule:
            raise ValueError("recurrence rules must not contain newline characters")
        if not rule.upper().startswith(RECURRENCE_LINE_PREFIXES):
            raise ValueError(
                "recurrence entries must start with 'RRULE:', 'EXRULE:', 'RDATE' or 'EXDATE'"
            )
        if rule.upper().startswith("RRULE:") and "FREQ=" not in rule.upper():
            raise ValueError("recurrence rules must include a FREQ component")
        normalized_rules.append(rule)
    return normalized_rules


class ModificationScope(StrEnum):
    """How far an update or delete propagates across a recurring series."""

    single = "single"
    all = "all"
    future = "future"


class SendUpdatesPolicy(StrEnum):
    """Controls whether attendees receive notifications for event changes."""

    all = "all"
    external_only = "externalOnly"
    none = "none"


class _ToolArguments(BaseModel):
    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)


class Reminder(_ToolArguments):
    method: Literal["email", "popup"] = "popup"
    minutes: int = Field(ge=0)


class Reminders(_ToolArguments):
    use_default: bool
    overrides: list[Reminder] | None = None


class Attendee(_ToolArguments):
    email: str = Field(min_length=1)


class ListEventsArguments(_ToolArguments):
    calendar_id: str | list[str]
    time_min: IsoDateTime | None = None
    time_max: IsoDateTime | None = None

    @field_validator("calendar_id", mode="before")
    @classmethod
    def _decode_json_list(cls, value: Any) -> Any:
        # Some MCP clients send arrays as JSON-encoded strings.
        if isinstance(value, str) and value.startswith("[") and value.endswith("]"):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                return value
        return value

    @field_validator("calendar_id")
    @classmethod
    def _validate_calendar_ids(cls, value: str | list[str]) -> str | list[str]:
        if isinstance(value, str):
            if not value.strip():
                raise ValueError("Calendar ID cannot be empty")
            return value.strip()
        if not value:
            raise ValueError("At least one calendar ID is required")
        if len(value) > MAX_CALENDARS_PER_REQUEST:
            raise ValueError(
                f"Maximum {MAX_CALENDARS_PER_REQUEST} calendars allowed per request"
            )
        if any(not calendar_id.strip() for calendar_id in value):
            raise ValueError("Calendar ID cannot be empty")
        if len(set(value)) != len(value):
            raise ValueError("Duplicate calendar IDs are not allowed")
        return value

    @field_validator("time_max")
    @classmethod
    def _time_max_after_time_min(
        cls, value: datetime | None, info: ValidationInfo
    ) -> datetime | None:
        time_min = info.data.get("time_min")
        if value is not None and time_min is not None and time_min >= value:
            raise ValueError("timeMin must be before timeMax")
        return value

    @property
    def calendar_ids(self) -> list[str]:
        return [self.calendar_id] if isinstance(self.calendar_id, str) else list(self.calendar_id)


class SearchEventsArguments(_ToolArguments):
    calendar_id: str = Field(min_length=1)
    query: str
    time_min: IsoDateTime | None = None
    time_max: IsoDateTime | None = None


class CreateEventArguments(_ToolArguments):
    calendar_id: str = Field(min_length=1)
    summary: str
    description: str | None = None
    start: IsoDateTime
    end: IsoDateTime
    time_zone: str
    attendees: list[Attendee] | None = None
    location: str | None = None
    color_id: str | None = None
    reminders: Reminders | None = None
    recurrence: list[str] | None = None
    send_updates: SendUpdatesPolicy | None = None

    @field_validator("time_zone")
    @classmethod
    def _normalize_timezone(cls, value: str) -> str:
        return _ensure_valid_timezone(value)

    @field_validator("recurrence")
    @classmethod
    def _normalize_recurrence_field(cls, value: list[str] | None) -> list[str] | None:
        return None if value is None else _normalize_recurrence(value)

    @field_validator("end")
    @classmethod
    def _end_after_start(cls, value: datetime, info: ValidationInfo) -> datetime:
        start = info.data.get("start")
        if start is not None and value <= start:
            raise ValueError("end must be after start")
        return value


class _ScopedEventCommand(_ToolArguments):
    """Fields shared by scope-aware update and delete requests."""

    calendar_id: str = Field(min_length=1)
    event_id: str = Field(min_length=1)
    modification_scope: ModificationScope = ModificationScope.all
    original_start_time: IsoDateTime | None = Field(default=None, validate_default=True)
    future_start_date: IsoDateTime | None = Field(default=None, validate_default=True)
    send_updates: SendUpdatesPolicy | None = None

    @field_validator("calendar_id", "event_id")
    @classmethod
    def _strip_identifier(cls, value: str, info: ValidationInfo) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError(f"{info.field_name} must be a non-empty string")
        return normalized

    @field_validator("original_start_time")
    @classmethod
    def _require_original_start_for_single(
        cls, value: datetime | None, info: ValidationInfo
    ) -> datetime | None:
        scope = info.data.get("modification_scope")
        if scope == ModificationScope.single and value is None:
            raise ValueError("originalStartTime is required when modificationScope is 'single'")
        return value

    @field_validator("future_start_date")
    @classmethod
    def _require_future_start_for_future(
        cls, value: datetime | None, info: ValidationInfo
    ) -> datetime | None:
        scope = info.data.get("modification_scope")
        if value is None:
            if scope == ModificationScope.future:
                raise ValueError("futureStartDate is required when modificationScope is 'future'")
            return value
        if value <= datetime.now(UTC):
            raise ValueError("futureStartDate must be in the future")
        return value


class UpdateEventCommand(_ScopedEventCommand):
    """Validated ``update-event`` request.

    ``time_zone`` is required even when start/end are unchanged: the Calendar
    API needs it to interpret any time-bearing field of a patch.
    """

    summary: str | None = None
    description: str | None = None
    start: IsoDateTime | None = None
    end: IsoDateTime | None = None
    time_zone: str
    attendees: list[Attendee] | None = None
    location: str | None = None
    color_id: str | None = None
    reminders: Reminders | None = None
    recurrence: list[str] | None = None

    @field_validator("time_zone")
    @classmethod
    def _normalize_timezone(cls, value: str) -> str:
        return _ensure_valid_timezone(value)

    @field_validator("recurrence")
    @classmethod
    def _normalize_recurrence_field(cls, value: list[str] | None) -> list[str] | None:
        return None if value is None else _normalize_recurrence(value)

    @field_validator("end")
    @classmethod
    def _end_after_start(cls, value: datetime | None, info: ValidationInfo) -> datetime | None:
        start = info.data.get("start")
        if value is not None and start is not None and value <= start:
            raise ValueError("end must be after start")
        return value


class DeleteEventCommand(_ScopedEventCommand):
    """Validated ``delete-event`` request."""


class FreeBusyItem(_ToolArguments):
    id: str

    @field_validator("id")
    @classmethod
    def _require_email(cls, value: str) -> str:
        normalized = value.strip()
        if not _EMAIL_PATTERN.match(normalized):
            raise ValueError("Must be a valid email address")
        return normalized


class FreeBusyArguments(_ToolArguments):
    time_min: IsoDateTime
    time_max: IsoDateTime
    time_zone: str | None = None
    group_expansion_max: int | None = Field(default=None, le=MAX_GROUP_EXPANSION)
    calendar_expansion_max: int | None = Field(default=None, le=MAX_CALENDAR_EXPANSION)
    items: list[FreeBusyItem]


def _format_error_location(loc: tuple[int | str, ...]) -> str:
    return ".".join(str(part) for part in loc) or "__root__"


def parse_arguments(model: type[ArgsT], raw: Mapping[str, Any] | None) -> ArgsT:
    """Validate a raw caller structure into ``model``.

    Raises ``CalendarValidationError`` listing every violated constraint.
    """
    try:
        return model.model_validate(dict(raw or {}))
    except pydantic.ValidationError as exc:
        errors = [
            {
                "field": _format_error_location(error["loc"]),
                "message": error["msg"].removeprefix("Value error, "),
            }
            for error in exc.errors()
        ]
        raise CalendarValidationError(errors) from exc


def _event_time(value: datetime, timezone: str | None) -> dict[str, str]:
    boundary = {"dateTime": value.isoformat()}
    if timezone is not None:
        boundary["timeZone"] = timezone
    return boundary


def build_event_body(args: CreateEventArguments) -> dict[str, Any]:
    """Translate ``create-event`` arguments into a Google Calendar event body."""
    body: dict[str, Any] = {
        "summary": args.summary,
        "start": _event_time(args.start, args.time_zone),
        "end": _event_time(args.end, args.time_zone),
    }
    if args.description is not None:
        body["description"] = args.description
    if args.location is not None:
        body["location"] = args.location
    if args.color_id is not None:
        body["colorId"] = args.color_id
    if args.attendees is not None:
        body["attendees"] = [{"email": attendee.email} for attendee in args.attendees]
    if args.reminders is not None:
        body["reminders"] = args.reminders.model_dump(by_alias=True, exclude_none=True)
    if args.recurrence is not None:
        body["recurrence"] = list(args.recurrence)
    return body


def build_patch_body(command: UpdateEventCommand) -> dict[str, Any]:
    """Translate an update command into a partial Google Calendar event body.

    Only fields that are explicitly set are included so that unchanged fields
    are not overwritten by the PATCH.
    """
    body: dict[str, Any] = {}
    if command.summary is not None:
        body["summary"] = command.summary
    if command.description is not None:
        body["description"] = command.description
    if command.location is not None:
        body["location"] = command.location
    if command.color_id is not None:
        body["colorId"] = command.color_id
    if command.attendees is not None:
        body["attendees"] = [{"email": attendee.email} for attendee in command.attendees]
    if command.reminders is not None:
        body["reminders"] = command.reminders.model_dump(by_alias=True, exclude_none=True)
    if command.recurrence is not None:
        body["recurrence"] = list(command.recurrence)
    if command.start is not None:
        body["start"] = _event_time(command.start, command.time_zone)
    if command.end is not None:
        body["end"] = _event_time(command.end, command.time_zone)
    return body
