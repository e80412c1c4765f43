"""Structured logging configuration."""
import logging
import sys
from typing import Any

import structlog

# Event keys that could carry conversation text; memory content is never logged.
_CONTENT_KEYS = frozenset({"content", "text", "turns", "query"})


def _drop_content(_logger: Any, _method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    for key in _CONTENT_KEYS & event_dict.keys():
        event_dict[key] = "<omitted>"
    return event_dict


def configure_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """Configure structlog and route stdlib loggers (uvicorn, httpx) to the same level."""
    level = getattr(logging, log_level.upper(), logging.INFO)
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _drop_content,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level, force=True)
    # httpx logs every request line at INFO.
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> Any:
    """Get a configured structlog logger."""
    return structlog.get_logger(name)
