"""Error taxonomy for calendar tools.

Every error raised by the calendar core derives from ``CalendarError``.
Validation and classification errors are raised before any mutating call is
issued; upstream errors carry the status code and message reported by the
Google Calendar API.
"""

from __future__ import annotations

import re
from typing import Any


class CalendarError(RuntimeError):
    """Base error raised by the calendar core."""


class CalendarAuthError(CalendarError):
    """Raised when a tool is invoked without a usable Google access token."""


class CalendarValidationError(CalendarError):
    """Raised when caller arguments are malformed or incomplete.

    ``errors`` enumerates every violated constraint as
    ``{"field": <dotted path>, "message": <reason>}`` entries.
    """

    def __init__(self, errors: list[dict[str, str]]) -> None:
        self.errors = errors
        summary = "; ".join(f"{item['field']}: {item['message']}" for item in errors)
        super().__init__(f"Invalid arguments: {summary}" if summary else "Invalid arguments")


class ScopeMismatchError(CalendarError):
    """Raised when the requested modification scope does not fit the target event."""


class RecurrenceFormatError(CalendarError):
    """Raised when no frequency clause can be located in a recurrence rule set."""


class EventNotFoundError(CalendarError):
    """Raised when the target event does not exist."""

    def __init__(self, *, calendar_id: str, event_id: str) -> None:
        self.calendar_id = calendar_id
        self.event_id = event_id
        super().__init__(f"Event '{event_id}' not found in calendar '{calendar_id}'")


class UpstreamError(CalendarError):
    """Raised when the Google Calendar API reports a failure."""

    def __init__(self, *, status_code: int | None, message: str) -> None:
        self.status_code = status_code
        self.message = message
        if status_code is None:
            super().__init__(f"Google Calendar request failed: {message}")
        else:
            super().__init__(f"Google Calendar API request failed ({status_code}): {message}")


class SeriesSplitError(UpstreamError):
    """Raised when a ``future`` split fails after the original series was truncated.

    The original series keeps its truncated recurrence; ``previous_recurrence``
    holds the rule set it had before, so a caller can restore it with a patch.
    """

    def __init__(
        self,
        *,
        status_code: int | None,
        message: str,
        truncated_event_id: str,
        previous_recurrence: list[str],
    ) -> None:
        self.truncated_event_id = truncated_event_id
        self.previous_recurrence = list(previous_recurrence)
        super().__init__(
            status_code=status_code,
            message=(
                f"{message} (series '{truncated_event_id}' was truncated but no "
                "replacement series was created)"
            ),
        )


def _redact_token_values(message: str) -> str:
    redacted = re.sub(r"(?i)\bBearer\s+[A-Za-z0-9._\-~+/]+=*", "Bearer [REDACTED]", message)
    return re.sub(
        r"(?i)\b(access_token|token|authorization)\s*[=:]\s*([^\s,;]+)",
        r"\1=[REDACTED]",
        redacted,
    )


def build_error_payload(exc: Exception, *, calendar_id: str | None = None) -> dict[str, Any]:
    """Build the structured error result returned by tools.

    Messages are redacted, whitespace-normalized and truncated to 200 characters.
    """
    sanitized = " ".join(_redact_token_values(str(exc)).split())[:200]
    payload: dict[str, Any] = {
        "status": "error",
        "error": sanitized,
        "error_type": type(exc).__name__,
    }
    if calendar_id is not None:
        payload["calendar_id"] = calendar_id
    if isinstance(exc, CalendarValidationError):
        payload["errors"] = exc.errors
    if isinstance(exc, UpstreamError) and exc.status_code is not None:
        payload["status_code"] = exc.status_code
    if isinstance(exc, SeriesSplitError):
        payload["truncated_event_id"] = exc.truncated_event_id
        payload["previous_recurrence"] = exc.previous_recurrence
    return payload
