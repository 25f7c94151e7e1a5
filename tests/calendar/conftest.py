"""Shared fixtures for calendar tests."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from gcal_mcp.calendar.google import GOOGLE_CALENDAR_API_BASE_URL, GoogleCalendarClient

ResponseFactory = Callable[..., httpx.Response]


def _mock_response(
    status_code: int,
    *,
    method: str = "GET",
    url: str = f"{GOOGLE_CALENDAR_API_BASE_URL}/calendars/primary/events",
    json_body: Any = None,
    text: str | None = None,
) -> httpx.Response:
    request = httpx.Request(method, url)
    if json_body is not None:
        return httpx.Response(status_code=status_code, json=json_body, request=request)
    if text is not None:
        return httpx.Response(status_code=status_code, text=text, request=request)
    return httpx.Response(status_code=status_code, request=request)


@pytest.fixture
def google_response() -> ResponseFactory:
    """Factory building ``httpx.Response`` objects bound to a request."""
    return _mock_response


@pytest.fixture
def mock_http_client() -> MagicMock:
    """A mock ``httpx.AsyncClient``; tests wire ``request`` with responses."""
    mock_client = MagicMock(spec=httpx.AsyncClient)
    mock_client.request = AsyncMock()
    return mock_client


@pytest.fixture
def google_client(mock_http_client: MagicMock) -> GoogleCalendarClient:
    return GoogleCalendarClient("access-token", mock_http_client)
