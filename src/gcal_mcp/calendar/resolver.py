"""Modification-scope resolution for update and delete requests.

A request is classified against the live event, then dispatched by scope:

- ``single`` patches (or deletes) one occurrence addressed by its instance id.
- ``all`` patches (or deletes) the event id as given.
- ``future`` splits the series: the master is re-fetched, its recurrence is
  bounded to end just before ``futureStartDate`` and, for updates, a new
  series carrying the caller's changes is inserted from that date on.

The split is not atomic. When the insert fails after the truncation patch
committed, ``SeriesSplitError`` reports the truncated series id and its
previous recurrence; nothing is rolled back.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta
from typing import Any

from gcal_mcp.calendar.classifier import ClassifiedEvent, EventType, classify_event
from gcal_mcp.calendar.errors import (
    CalendarValidationError,
    EventNotFoundError,
    ScopeMismatchError,
    SeriesSplitError,
    UpstreamError,
)
from gcal_mcp.calendar.google import GoogleCalendarClient
from gcal_mcp.calendar.instances import (
    estimate_duration,
    event_start,
    instance_id,
    is_all_day,
    project_end,
)
from gcal_mcp.calendar.models import (
    DeleteEventCommand,
    ModificationScope,
    UpdateEventCommand,
    build_patch_body,
)
from gcal_mcp.calendar.recurrence import bound_recurrence, compute_cutoff, continue_recurrence

logger = logging.getLogger(__name__)

DUPLICATED_FIELDS = (
    "summary",
    "description",
    "location",
    "colorId",
    "reminders",
    "transparency",
    "visibility",
    "guestsCanInviteOthers",
    "guestsCanModify",
    "guestsCanSeeOtherGuests",
    "anyoneCanAddSelf",
    "extendedProperties",
)
_WRITABLE_ATTENDEE_FIELDS = ("email", "displayName", "optional", "responseStatus")


def _duplication_template(original: dict[str, Any]) -> dict[str, Any]:
    """Series-level fields of ``original`` worth carrying into a replacement series."""
    template = {field: original[field] for field in DUPLICATED_FIELDS if field in original}
    attendees = original.get("attendees")
    if isinstance(attendees, list):
        template["attendees"] = [
            {key: attendee[key] for key in _WRITABLE_ATTENDEE_FIELDS if key in attendee}
            for attendee in attendees
            if isinstance(attendee, dict) and attendee.get("email")
        ]
    return template


def _boundary(value: date | datetime, timezone: str) -> dict[str, str]:
    if isinstance(value, datetime):
        return {"dateTime": value.isoformat(), "timeZone": timezone}
    return {"date": value.isoformat()}


def _all_day_end(end: datetime) -> date:
    """Exclusive end date of an all-day event that runs until ``end``."""
    if end.time() == time.min:
        return end.date()
    return end.date() + timedelta(days=1)


def _require_series_scope(scope: ModificationScope, classified: ClassifiedEvent) -> None:
    if scope is ModificationScope.all:
        return
    match classified.event_type:
        case EventType.recurring | EventType.instance:
            return
        case EventType.single:
            raise ScopeMismatchError(
                f"modificationScope '{scope}' requires a recurring event; event "
                f"'{classified.event.get('id')}' is not part of a series"
            )


class RecurringEventResolver:
    """Translates scoped update and delete commands into Calendar API calls."""

    def __init__(self, client: GoogleCalendarClient) -> None:
        self._client = client

    async def update(self, command: UpdateEventCommand) -> dict[str, Any]:
        """Apply ``command`` and return the resulting event.

        The result is the patched instance for ``single``, the patched event
        for ``all`` and the newly inserted series for ``future``.
        """
        classified = await classify_event(self._client, command.calendar_id, command.event_id)
        _require_series_scope(command.modification_scope, classified)

        match command.modification_scope:
            case ModificationScope.single:
                target = self._instance_target(classified, command.original_start_time)
                logger.info(
                    "Updating single occurrence %s of %s event %s",
                    target,
                    classified.event_type,
                    command.event_id,
                )
                return await self._client.patch_event(
                    command.calendar_id,
                    target,
                    build_patch_body(command),
                    send_updates=command.send_updates,
                )
            case ModificationScope.all:
                logger.info(
                    "Updating all occurrences of %s event %s",
                    classified.event_type,
                    command.event_id,
                )
                return await self._client.patch_event(
                    command.calendar_id,
                    command.event_id,
                    build_patch_body(command),
                    send_updates=command.send_updates,
                )
            case ModificationScope.future:
                return await self._split_series(classified, command)

    async def delete(self, command: DeleteEventCommand) -> dict[str, Any] | None:
        """Apply a scoped delete.

        Returns the truncated master for ``future`` and ``None`` otherwise.
        """
        classified = await classify_event(self._client, command.calendar_id, command.event_id)
        _require_series_scope(command.modification_scope, classified)

        match command.modification_scope:
            case ModificationScope.single:
                target = self._instance_target(classified, command.original_start_time)
                logger.info("Deleting single occurrence %s of event %s", target, command.event_id)
                await self._client.delete_event(
                    command.calendar_id, target, send_updates=command.send_updates
                )
                return None
            case ModificationScope.all:
                logger.info(
                    "Deleting %s event %s", classified.event_type, command.event_id
                )
                await self._client.delete_event(
                    command.calendar_id, command.event_id, send_updates=command.send_updates
                )
                return None
            case ModificationScope.future:
                original, _continuation = await self._fetch_series_for_split(
                    classified, command.calendar_id, command.future_start_date
                )
                logger.info(
                    "Deleting occurrences of series %s from %s on",
                    original["id"],
                    command.future_start_date.isoformat(),
                )
                return await self._truncate(
                    original,
                    command.calendar_id,
                    command.future_start_date,
                    command.send_updates,
                )

    def _instance_target(self, classified: ClassifiedEvent, original_start: datetime) -> str:
        series_id = classified.series_id
        if is_all_day(classified.event):
            return instance_id(series_id, original_start.date())
        return instance_id(series_id, original_start)

    async def _fetch_series_for_split(
        self,
        classified: ClassifiedEvent,
        calendar_id: str,
        future_start: datetime,
    ) -> tuple[dict[str, Any], list[str]]:
        # Re-fetch: the series may have changed since classification.
        series_id = classified.series_id
        original = await self._client.get_event(calendar_id, series_id)
        if original is None:
            raise EventNotFoundError(calendar_id=calendar_id, event_id=series_id)
        recurrence = original.get("recurrence")
        if not isinstance(recurrence, list) or not recurrence:
            raise ScopeMismatchError(
                f"Event '{series_id}' no longer carries a recurrence; "
                "modificationScope 'future' cannot be applied"
            )

        series_start = event_start(original)
        all_day = not isinstance(series_start, datetime)
        threshold = future_start.date() if all_day else future_start
        if threshold <= series_start:
            raise ScopeMismatchError(
                f"futureStartDate {future_start.isoformat()} is not after the first occurrence "
                f"of series '{series_id}'; use modificationScope 'all' instead"
            )

        continuation = continue_recurrence(
            recurrence, series_start=series_start, future_start=future_start
        )
        if continuation is None:
            raise ScopeMismatchError(
                f"Series '{series_id}' has no occurrences on or after "
                f"{future_start.isoformat()}"
            )
        return original, continuation

    async def _truncate(
        self,
        original: dict[str, Any],
        calendar_id: str,
        future_start: datetime,
        send_updates: str | None,
    ) -> dict[str, Any]:
        cutoff = compute_cutoff(future_start, all_day=is_all_day(original))
        bounded = bound_recurrence(original["recurrence"], cutoff)
        return await self._client.patch_event(
            calendar_id,
            original["id"],
            {"recurrence": bounded},
            send_updates=send_updates,
        )

    async def _split_series(
        self, classified: ClassifiedEvent, command: UpdateEventCommand
    ) -> dict[str, Any]:
        future_start = command.future_start_date
        original, continuation = await self._fetch_series_for_split(
            classified, command.calendar_id, future_start
        )
        all_day = is_all_day(original)
        previous_recurrence = list(original["recurrence"])

        new_start: date | datetime
        if command.start is not None:
            new_start = command.start
        elif all_day:
            new_start = future_start.date()
        else:
            new_start = future_start
        new_end: date | datetime
        if command.end is None:
            new_end = project_end(new_start, estimate_duration(original))
        elif isinstance(new_start, datetime):
            new_end = command.end
        else:
            # Start and end of an event must both be dates or both be date-times.
            new_end = _all_day_end(command.end)
        if new_end <= new_start:
            raise CalendarValidationError(
                [{"field": "end", "message": "end must be after the start of the new series"}]
            )

        new_event = {
            **_duplication_template(original),
            **build_patch_body(command),
            "start": _boundary(new_start, command.time_zone),
            "end": _boundary(new_end, command.time_zone),
            "recurrence": list(command.recurrence) if command.recurrence else continuation,
        }

        logger.info(
            "Splitting series %s at %s", original["id"], future_start.isoformat()
        )
        await self._truncate(original, command.calendar_id, future_start, command.send_updates)

        try:
            return await self._client.insert_event(
                command.calendar_id, new_event, send_updates=command.send_updates
            )
        except UpstreamError as exc:
            logger.error(
                "Series %s was truncated at %s but the replacement series could not be "
                "created: %s",
                original["id"],
                future_start.isoformat(),
                exc,
            )
            raise SeriesSplitError(
                status_code=exc.status_code,
                message=exc.message,
                truncated_event_id=original["id"],
                previous_recurrence=previous_recurrence,
            ) from exc
