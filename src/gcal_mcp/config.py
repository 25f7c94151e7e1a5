"""Server configuration loading and validation.

Reads an optional ``gcal-mcp.toml``, resolves ``${VAR}`` references, applies
the ``PORT`` / ``SERVER_HOST`` environment overrides and returns a validated
ServerConfig dataclass.

Example::

    [server]
    host = "0.0.0.0"
    port = 3011

    [server.logging]
    level = "DEBUG"
    format = "json"

    [google]
    timeout_seconds = 20

    [auth]
    required_scopes = ["https://www.googleapis.com/auth/calendar"]
"""

from __future__ import annotations

import os
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

DEFAULT_CONFIG_FILENAME = "gcal-mcp.toml"
DEFAULT_HOST = "localhost"
DEFAULT_PORT = 3011
DEFAULT_MCP_PATH = "/mcp"
GOOGLE_TOKENINFO_URL = "https://oauth2.googleapis.com/tokeninfo"

# Matches ${VAR_NAME} references.
_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


class ConfigError(Exception):
    """Raised when server configuration is malformed or invalid."""


@dataclass
class LoggingConfig:
    """Logging configuration from the [server.logging] section."""

    level: str = "INFO"
    format: str = "text"  # "text" or "json"
    log_file: str | None = None


@dataclass
class GoogleApiConfig:
    """Google endpoints from the [google] section."""

    api_base_url: str = "https://www.googleapis.com/calendar/v3"
    tokeninfo_url: str = GOOGLE_TOKENINFO_URL
    timeout_seconds: float = 30.0


@dataclass
class AuthConfig:
    """Bearer-token verification from the [auth] section.

    With ``enabled = false`` the server accepts unauthenticated connections
    and every tool reports that authentication is required.
    """

    enabled: bool = True
    required_scopes: list[str] = field(default_factory=list)


@dataclass
class ServerConfig:
    name: str = "google-calendar"
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    path: str = DEFAULT_MCP_PATH
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    google: GoogleApiConfig = field(default_factory=GoogleApiConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)


def resolve_env_vars(value: Any) -> Any:
    """Expand ``${VAR}`` references in every string of a parsed TOML tree.

    Raises ``ConfigError`` naming each referenced variable that is not set.
    """
    if isinstance(value, dict):
        return {key: resolve_env_vars(item) for key, item in value.items()}
    if isinstance(value, list):
        return [resolve_env_vars(item) for item in value]
    if isinstance(value, str):
        return _expand_env_refs(value)
    return value


def _expand_env_refs(text: str) -> str:
    missing = [name for name in _ENV_VAR_PATTERN.findall(text) if name not in os.environ]
    if missing:
        raise ConfigError(
            f"Environment variable(s) not set: {', '.join(dict.fromkeys(missing))} "
            f"(referenced in {text!r})"
        )
    return _ENV_VAR_PATTERN.sub(lambda match: os.environ[match.group(1)], text)


def _parse_port(raw: Any, *, source: str) -> int:
    try:
        port = int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{source} must be an integer, got {raw!r}") from exc
    if not 0 < port < 65536:
        raise ConfigError(f"{source} must be between 1 and 65535, got {port}")
    return port


def _section(data: dict[str, Any], key: str, *, parent: str | None = None) -> dict[str, Any]:
    value = data.get(key, {})
    if not isinstance(value, dict):
        dotted = f"{parent}.{key}" if parent else key
        raise ConfigError(f"[{dotted}] must be a table")
    return value


def _parse_logging(server_section: dict[str, Any]) -> LoggingConfig:
    logging_section = _section(server_section, "logging", parent="server")
    log_level = str(logging_section.get("level", "INFO")).upper()
    log_format = str(logging_section.get("format", "text")).lower()
    if log_format not in ("text", "json"):
        raise ConfigError(
            f"Invalid server.logging.format: {log_format!r}. Must be 'text' or 'json'."
        )
    log_file = logging_section.get("log_file")
    if log_file is not None and (not isinstance(log_file, str) or not log_file.strip()):
        raise ConfigError("server.logging.log_file must be a non-empty string when set")
    return LoggingConfig(level=log_level, format=log_format, log_file=log_file)


def _parse_google(data: dict[str, Any]) -> GoogleApiConfig:
    google_section = _section(data, "google")
    defaults = GoogleApiConfig()
    try:
        timeout = float(google_section.get("timeout_seconds", defaults.timeout_seconds))
    except (TypeError, ValueError) as exc:
        raise ConfigError("google.timeout_seconds must be a number") from exc
    if timeout <= 0:
        raise ConfigError("google.timeout_seconds must be positive")
    return GoogleApiConfig(
        api_base_url=str(google_section.get("api_base_url", defaults.api_base_url)).rstrip("/"),
        tokeninfo_url=str(google_section.get("tokeninfo_url", defaults.tokeninfo_url)),
        timeout_seconds=timeout,
    )


def _parse_auth(data: dict[str, Any]) -> AuthConfig:
    auth_section = _section(data, "auth")
    enabled = auth_section.get("enabled", True)
    if not isinstance(enabled, bool):
        raise ConfigError("auth.enabled must be a boolean")
    scopes = auth_section.get("required_scopes", [])
    if not isinstance(scopes, list) or not all(isinstance(s, str) for s in scopes):
        raise ConfigError("auth.required_scopes must be a list of strings")
    return AuthConfig(enabled=enabled, required_scopes=list(scopes))


def load_config(path: Path | None = None) -> ServerConfig:
    """Load server configuration.

    Parameters
    ----------
    path:
        TOML file to read. When ``None``, ``gcal-mcp.toml`` in the working
        directory is used if it exists; otherwise defaults apply.

    Raises
    ------
    ConfigError
        If an explicit file is missing, contains invalid TOML, or holds
        invalid values.
    """
    data: dict[str, Any] = {}
    toml_path = path if path is not None else Path.cwd() / DEFAULT_CONFIG_FILENAME
    if toml_path.exists():
        try:
            data = tomllib.loads(toml_path.read_bytes().decode())
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"Invalid TOML in {toml_path}: {exc}") from exc
    elif path is not None:
        raise ConfigError(f"Config file not found: {toml_path}")

    data = resolve_env_vars(data)

    server_section = _section(data, "server")
    name = str(server_section.get("name", ServerConfig.name)).strip()
    if not name:
        raise ConfigError("server.name must be a non-empty string")

    host = str(server_section.get("host", DEFAULT_HOST))
    port = _parse_port(server_section.get("port", DEFAULT_PORT), source="server.port")
    mcp_path = str(server_section.get("path", DEFAULT_MCP_PATH))
    if not mcp_path.startswith("/"):
        raise ConfigError(f"server.path must start with '/', got {mcp_path!r}")

    # Environment overrides win over the file.
    if os.environ.get("SERVER_HOST"):
        host = os.environ["SERVER_HOST"]
    if os.environ.get("PORT"):
        port = _parse_port(os.environ["PORT"], source="PORT")

    return ServerConfig(
        name=name,
        host=host,
        port=port,
        path=mcp_path,
        logging=_parse_logging(server_section),
        google=_parse_google(data),
        auth=_parse_auth(data),
    )
