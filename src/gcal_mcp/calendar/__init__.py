"""Calendar module: Google Calendar tools and recurring-event scope resolution."""

from gcal_mcp.calendar.classifier import ClassifiedEvent, EventType, classify_event
from gcal_mcp.calendar.errors import (
    CalendarAuthError,
    CalendarError,
    CalendarValidationError,
    EventNotFoundError,
    RecurrenceFormatError,
    ScopeMismatchError,
    SeriesSplitError,
    UpstreamError,
)
from gcal_mcp.calendar.google import GoogleCalendarClient
from gcal_mcp.calendar.instances import estimate_duration, instance_id, project_end
from gcal_mcp.calendar.models import (
    DeleteEventCommand,
    ModificationScope,
    SendUpdatesPolicy,
    UpdateEventCommand,
)
from gcal_mcp.calendar.module import CalendarModule
from gcal_mcp.calendar.recurrence import bound_recurrence, compute_cutoff
from gcal_mcp.calendar.resolver import RecurringEventResolver

__all__ = [
    "CalendarAuthError",
    "CalendarError",
    "CalendarModule",
    "CalendarValidationError",
    "ClassifiedEvent",
    "DeleteEventCommand",
    "EventNotFoundError",
    "EventType",
    "GoogleCalendarClient",
    "ModificationScope",
    "RecurrenceFormatError",
    "RecurringEventResolver",
    "ScopeMismatchError",
    "SendUpdatesPolicy",
    "SeriesSplitError",
    "UpdateEventCommand",
    "UpstreamError",
    "bound_recurrence",
    "classify_event",
    "compute_cutoff",
    "estimate_duration",
    "instance_id",
    "project_end",
]
