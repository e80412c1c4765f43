"""Utilities: logging, metrics, timing."""

from .logging_config import configure_logging, get_logger
from .timing import timed

__all__ = [
    "configure_logging",
    "get_logger",
    "timed",
]
