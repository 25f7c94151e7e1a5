"""Async Google Calendar REST client authenticated with the caller's bearer token."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any
from urllib.parse import quote

import httpx

from gcal_mcp.calendar.errors import UpstreamError

logger = logging.getLogger(__name__)

GOOGLE_CALENDAR_API_BASE_URL = "https://www.googleapis.com/calendar/v3"
DEFAULT_TIMEOUT_SECONDS = 30.0
MAX_EVENT_RESULTS = 250


def _google_rfc3339(value: datetime) -> str:
    normalized = value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    return normalized.astimezone(UTC).isoformat().replace("+00:00", "Z")


def _safe_google_error_message(response: httpx.Response) -> str:
    """Google's error message for ``response``, whitespace-collapsed and capped."""
    try:
        payload = response.json()
    except ValueError:
        payload = None

    candidate: Any = None
    if isinstance(payload, dict):
        error = payload.get("error")
        candidate = error.get("message") if isinstance(error, dict) else error
    if not isinstance(candidate, str) or not candidate.strip():
        candidate = response.text

    message = " ".join(candidate.split())
    return message[:200] if message else "Google returned no error details"


def _send_updates_params(send_updates: str | None) -> dict[str, Any] | None:
    if send_updates is None:
        return None
    normalized = send_updates.strip()
    return {"sendUpdates": normalized} if normalized else None


class GoogleCalendarClient:
    """Thin wrapper over the Calendar v3 REST API.

    Every non-2xx response raises ``UpstreamError`` carrying Google's status
    code and message, except ``get_event`` which maps 404 to ``None``.
    Requests are issued once; nothing is retried.
    """

    def __init__(
        self,
        access_token: str,
        http_client: httpx.AsyncClient | None = None,
        *,
        base_url: str = GOOGLE_CALENDAR_API_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        if not access_token or not access_token.strip():
            raise ValueError("access_token must be a non-empty string")
        self._access_token = access_token.strip()
        self._base_url = base_url.rstrip("/")
        self._owns_http_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self) -> GoogleCalendarClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self._http_client.aclose()

    def _event_path(self, calendar_id: str, event_id: str | None = None) -> str:
        path = f"/calendars/{quote(calendar_id, safe='')}/events"
        if event_id is not None:
            path = f"{path}/{quote(event_id, safe='')}"
        return path

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> httpx.Response:
        normalized_path = path if path.startswith("/") else f"/{path}"
        url = f"{self._base_url}{normalized_path}"
        headers = {"Authorization": f"Bearer {self._access_token}"}
        try:
            return await self._http_client.request(
                method,
                url,
                params=params,
                json=json_body,
                headers=headers,
            )
        except httpx.HTTPError as exc:
            raise UpstreamError(status_code=None, message=str(exc) or type(exc).__name__) from exc

    def _decode(self, response: httpx.Response) -> dict[str, Any]:
        if response.status_code < 200 or response.status_code >= 300:
            raise UpstreamError(
                status_code=response.status_code,
                message=_safe_google_error_message(response),
            )
        if response.status_code == 204 or not response.content:
            return {}
        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamError(
                status_code=response.status_code,
                message="Google Calendar API returned invalid JSON for a successful response",
            ) from exc
        if not isinstance(payload, dict):
            raise UpstreamError(
                status_code=response.status_code,
                message="Google Calendar API returned an unexpected JSON payload shape",
            )
        return payload

    async def _request_json(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        response = await self._request(method, path, params=params, json_body=json_body)
        return self._decode(response)

    async def list_calendars(self) -> list[dict[str, Any]]:
        payload = await self._request_json("GET", "/users/me/calendarList")
        items = payload.get("items", [])
        return [item for item in items if isinstance(item, dict)]

    async def list_colors(self) -> dict[str, Any]:
        return await self._request_json("GET", "/colors")

    async def list_events(
        self,
        calendar_id: str,
        *,
        time_min: datetime | None = None,
        time_max: datetime | None = None,
        query: str | None = None,
    ) -> list[dict[str, Any]]:
        """List expanded occurrences of ``calendar_id`` ordered by start time.

        Follows ``nextPageToken`` until Google reports no further page.
        """
        params: dict[str, Any] = {
            "singleEvents": "true",
            "orderBy": "startTime",
            "maxResults": MAX_EVENT_RESULTS,
        }
        if time_min is not None:
            params["timeMin"] = _google_rfc3339(time_min)
        if time_max is not None:
            params["timeMax"] = _google_rfc3339(time_max)
        if query is not None:
            params["q"] = query

        events: list[dict[str, Any]] = []
        page_params = params
        while True:
            payload = await self._request_json(
                "GET", self._event_path(calendar_id), params=page_params
            )
            items = payload.get("items", [])
            events.extend(item for item in items if isinstance(item, dict))

            next_page_token = payload.get("nextPageToken")
            if not isinstance(next_page_token, str) or not next_page_token:
                return events
            page_params = {**params, "pageToken": next_page_token}

    async def get_event(self, calendar_id: str, event_id: str) -> dict[str, Any] | None:
        response = await self._request("GET", self._event_path(calendar_id, event_id))
        if response.status_code == 404:
            return None
        return self._decode(response)

    async def patch_event(
        self,
        calendar_id: str,
        event_id: str,
        body: dict[str, Any],
        *,
        send_updates: str | None = None,
    ) -> dict[str, Any]:
        return await self._request_json(
            "PATCH",
            self._event_path(calendar_id, event_id),
            params=_send_updates_params(send_updates),
            json_body=body,
        )

    async def insert_event(
        self,
        calendar_id: str,
        body: dict[str, Any],
        *,
        send_updates: str | None = None,
    ) -> dict[str, Any]:
        return await self._request_json(
            "POST",
            self._event_path(calendar_id),
            params=_send_updates_params(send_updates),
            json_body=body,
        )

    async def delete_event(
        self,
        calendar_id: str,
        event_id: str,
        *,
        send_updates: str | None = None,
    ) -> None:
        await self._request_json(
            "DELETE",
            self._event_path(calendar_id, event_id),
            params=_send_updates_params(send_updates),
        )
        logger.debug("Deleted event %s from calendar %s", event_id, calendar_id)

    async def query_free_busy(self, body: dict[str, Any]) -> dict[str, Any]:
        return await self._request_json("POST", "/freeBusy", json_body=body)
