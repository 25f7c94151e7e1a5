"""CLI for the Google Calendar MCP server."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import sys
from pathlib import Path

import click

from gcal_mcp import __version__
from gcal_mcp.config import ConfigError, ServerConfig, load_config
from gcal_mcp.core.logging import configure_logging

logger = logging.getLogger(__name__)


def _load_or_exit(config_path: Path | None) -> ServerConfig:
    try:
        return load_config(config_path)
    except ConfigError as exc:
        click.echo(f"Configuration error: {exc}", err=True)
        sys.exit(1)


@click.group()
@click.version_option(version=__version__)
def cli() -> None:
    """gcal-mcp: Google Calendar tools over the Model Context Protocol."""


@cli.command()
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Path to a gcal-mcp.toml file",
)
@click.option("--host", default=None, help="Interface to bind (overrides config and SERVER_HOST)")
@click.option("--port", type=int, default=None, help="Port to bind (overrides config and PORT)")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Root log level",
)
def serve(
    config_path: Path | None, host: str | None, port: int | None, log_level: str | None
) -> None:
    """Serve the calendar tools over Streamable HTTP."""
    from gcal_mcp.server import serve as run_server

    config = _load_or_exit(config_path)
    if host is not None:
        config.host = host
    if port is not None:
        config.port = port
    if log_level is not None:
        config.logging = dataclasses.replace(config.logging, level=log_level.upper())

    configure_logging(
        level=config.logging.level,
        fmt=config.logging.format,
        log_file=Path(config.logging.log_file) if config.logging.log_file else None,
    )
    asyncio.run(run_server(config))


@cli.command("tools")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Path to a gcal-mcp.toml file",
)
def tools_cmd(config_path: Path | None) -> None:
    """List the registered tool names."""
    from gcal_mcp.server import create_server

    config = _load_or_exit(config_path)
    mcp = create_server(config)
    for name in sorted(asyncio.run(mcp.get_tools())):
        click.echo(name)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
