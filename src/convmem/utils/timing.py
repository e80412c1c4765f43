"""Timing utilities for performance measurement."""

import time
from contextlib import contextmanager

from prometheus_client import Histogram

from .logging_config import get_logger

logger = get_logger(__name__)


@contextmanager
def timed(
    operation: str,
    warn_ms: float | None = None,
    histogram: Histogram | None = None,
    **fields,
):
    """Log (and optionally observe) the elapsed time of a block.

    Args:
        operation: Label for the timed block.
        warn_ms: Log at warning level when elapsed time exceeds this threshold (ms).
        histogram: Prometheus histogram to observe the duration in seconds.
        fields: Extra structured fields added to the log event.

    Usage::

        with timed("context_build", warn_ms=500, session_id=session_id):
            context = await builder.build(...)
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        if histogram is not None:
            histogram.observe(elapsed)
        log_method = logger.debug
        if warn_ms is not None and elapsed * 1000 > warn_ms:
            log_method = logger.warning
        log_method(
            "operation_timed",
            operation=operation,
            elapsed_ms=round(elapsed * 1000, 2),
            **fields,
        )
