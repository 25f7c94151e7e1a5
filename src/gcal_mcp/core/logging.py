"""Logging setup for gcal-mcp.

Standard-library loggers are routed through structlog's ProcessorFormatter,
so modules keep calling ``logging.getLogger(__name__)``. ``text`` renders
with structlog's ConsoleRenderer; ``json`` emits one object per line.

Every record carries the name of the tool being served (``tool``) and the
OpenTelemetry ``trace_id`` / ``span_id`` of the active span.
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar, Token
from pathlib import Path
from typing import Any

import structlog
from opentelemetry import trace

_tool_context: ContextVar[str | None] = ContextVar("tool_name", default=None)

_ZERO_TRACE_ID = "0" * 32
_ZERO_SPAN_ID = "0" * 16

# Only WARNING and above from these.
_NOISE_LOGGERS = (
    "uvicorn.access",
    "uvicorn.error",
    "mcp.server.lowlevel.server",
    "httpx",
    "httpcore",
)


def set_tool_context(name: str | None) -> Token[str | None]:
    """Bind ``name`` as the current tool; pass the token to ``reset_tool_context``."""
    return _tool_context.set(name)


def reset_tool_context(token: Token[str | None]) -> None:
    _tool_context.reset(token)


def get_tool_context() -> str | None:
    return _tool_context.get()


def add_tool_context(_logger: Any, _method_name: str, event_dict: dict) -> dict:
    event_dict["tool"] = _tool_context.get()
    return event_dict


def add_otel_context(_logger: Any, _method_name: str, event_dict: dict) -> dict:
    """Attach the active span's ids, or all-zero ids outside any span."""
    span_context = trace.get_current_span().get_span_context()
    if span_context.is_valid:
        event_dict["trace_id"] = trace.format_trace_id(span_context.trace_id)
        event_dict["span_id"] = trace.format_span_id(span_context.span_id)
    else:
        event_dict["trace_id"] = _ZERO_TRACE_ID
        event_dict["span_id"] = _ZERO_SPAN_ID
    return event_dict


def _shared_processors(timestamp_fmt: str) -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt=timestamp_fmt),
        add_tool_context,
        add_otel_context,
        structlog.stdlib.ExtraAdder(),
    ]


def _with_renderer(
    handler: logging.Handler,
    renderer: structlog.types.Processor,
    pre_chain: list[structlog.types.Processor],
) -> logging.Handler:
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
            foreign_pre_chain=pre_chain,
        )
    )
    return handler


def configure_logging(
    level: str = "INFO",
    fmt: str = "text",
    log_file: Path | None = None,
) -> None:
    """Install the stderr handler (and optionally a JSON file handler) on the root logger.

    Parameters
    ----------
    level:
        Root log level name, e.g. ``"DEBUG"``.
    fmt:
        ``"text"`` or ``"json"`` for the stderr handler.
    log_file:
        Extra JSON-lines log file, written at DEBUG. Its directory is created
        if missing.

    Calling it again replaces the handlers installed by the previous call.
    """
    json_output = fmt == "json"
    pre_chain = _shared_processors("iso" if json_output else "%H:%M:%S")
    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.addHandler(_with_renderer(logging.StreamHandler(sys.stderr), renderer, pre_chain))

    if log_file is not None:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = _with_renderer(
            logging.FileHandler(log_path),
            structlog.processors.JSONRenderer(),
            _shared_processors("iso"),
        )
        file_handler.setLevel(logging.DEBUG)
        root.addHandler(file_handler)

    for name in _NOISE_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
