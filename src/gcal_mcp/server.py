"""FastMCP server assembly, bearer-token verification and HTTP serving."""

from __future__ import annotations

import logging
import time
from typing import Any

import httpx
import uvicorn
from fastmcp import FastMCP
from fastmcp.server.auth import AccessToken, TokenVerifier

from gcal_mcp.calendar.module import CalendarModule
from gcal_mcp.config import GOOGLE_TOKENINFO_URL, ServerConfig

logger = logging.getLogger(__name__)

_INVALID_TOKEN_STATUS_CODES = (400, 401)


class GoogleTokenVerifier(TokenVerifier):
    """Validates Google OAuth access tokens with the tokeninfo endpoint.

    A token is accepted when Google reports it as live; the verified token is
    then forwarded to the Calendar API by the tools.
    """

    def __init__(
        self,
        *,
        tokeninfo_url: str = GOOGLE_TOKENINFO_URL,
        required_scopes: list[str] | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        super().__init__(required_scopes=required_scopes)
        self._tokeninfo_url = tokeninfo_url
        self._http_client = http_client
        self._timeout = timeout

    async def _fetch_tokeninfo(self, token: str) -> httpx.Response:
        if self._http_client is not None:
            return await self._http_client.get(self._tokeninfo_url, params={"access_token": token})
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.get(self._tokeninfo_url, params={"access_token": token})

    async def verify_token(self, token: str) -> AccessToken | None:
        try:
            response = await self._fetch_tokeninfo(token)
        except httpx.HTTPError as exc:
            logger.warning("Token verification request failed: %s", exc)
            return None

        if response.status_code in _INVALID_TOKEN_STATUS_CODES:
            logger.info("Rejected invalid or expired Google access token")
            return None
        if response.status_code < 200 or response.status_code >= 300:
            logger.warning("Token verification returned HTTP %d", response.status_code)
            return None

        try:
            payload: dict[str, Any] = response.json()
        except ValueError:
            logger.warning("Token verification returned a non-JSON body")
            return None

        expires_at: int | None = None
        expires_in = payload.get("expires_in")
        if expires_in is not None:
            try:
                expires_at = int(time.time()) + int(expires_in)
            except (TypeError, ValueError):
                expires_at = None

        return AccessToken(
            token=token,
            client_id=str(payload.get("azp") or payload.get("aud") or "google"),
            scopes=str(payload.get("scope", "")).split(),
            expires_at=expires_at,
        )


def create_server(config: ServerConfig, *, module: CalendarModule | None = None) -> FastMCP:
    """Build the FastMCP server with the calendar tools registered."""
    auth = None
    if config.auth.enabled:
        auth = GoogleTokenVerifier(
            tokeninfo_url=config.google.tokeninfo_url,
            required_scopes=config.auth.required_scopes or None,
            timeout=config.google.timeout_seconds,
        )
    else:
        logger.warning("Bearer-token verification is disabled; tools will reject every call")

    mcp = FastMCP(config.name, auth=auth)
    (module or CalendarModule(config.google)).register_tools(mcp)
    return mcp


def build_http_app(mcp: FastMCP, config: ServerConfig) -> Any:
    """Stateless Streamable HTTP app mounted at ``config.path``."""
    return mcp.http_app(path=config.path, transport="http", stateless_http=True)


async def serve(config: ServerConfig) -> None:
    mcp = create_server(config)
    app = build_http_app(mcp, config)
    uvicorn_config = uvicorn.Config(
        app,
        host=config.host,
        port=config.port,
        log_level=config.logging.level.lower(),
        log_config=None,
    )
    server = uvicorn.Server(uvicorn_config)
    logger.info(
        "Serving %s on http://%s:%d%s", config.name, config.host, config.port, config.path
    )
    await server.serve()
