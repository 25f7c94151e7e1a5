"""Event-type classification against the live calendar."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Protocol

from gcal_mcp.calendar.errors import EventNotFoundError


class EventType(StrEnum):
    """Recurrence role of a stored event."""

    single = "single"
    recurring = "recurring"
    instance = "instance"


class EventFetcher(Protocol):
    async def get_event(self, calendar_id: str, event_id: str) -> dict[str, Any] | None: ...


@dataclass(frozen=True)
class ClassifiedEvent:
    """An event snapshot together with its derived recurrence role."""

    event_type: EventType
    event: dict[str, Any]

    @property
    def series_id(self) -> str | None:
        """Identifier of the master series, or ``None`` for standalone events."""
        match self.event_type:
            case EventType.recurring:
                return self.event.get("id")
            case EventType.instance:
                return self.event.get("recurringEventId")
            case EventType.single:
                return None


def event_type_of(event: Mapping[str, Any]) -> EventType:
    recurrence = event.get("recurrence")
    if isinstance(recurrence, list) and recurrence:
        return EventType.recurring
    recurring_event_id = event.get("recurringEventId")
    if isinstance(recurring_event_id, str) and recurring_event_id.strip():
        return EventType.instance
    return EventType.single


async def classify_event(
    client: EventFetcher, calendar_id: str, event_id: str
) -> ClassifiedEvent:
    """Fetch ``event_id`` and classify it.

    Raises ``EventNotFoundError`` when the event does not exist; other
    failures surface as ``UpstreamError`` from the client.
    """
    event = await client.get_event(calendar_id, event_id)
    if event is None:
        raise EventNotFoundError(calendar_id=calendar_id, event_id=event_id)
    return ClassifiedEvent(event_type=event_type_of(event), event=event)
