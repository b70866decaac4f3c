"""Logging setup for the trip coordination core."""

import logging
import sys

from .trip_logging import ContextFilter, DefaultCorrelationFilter, DevFormatter, JSONFormatter, PIIFilter


def setup_logging(
    level: str = "INFO",
    json_output: bool = False,
    environment: str = "development",
) -> None:
    """Configure root logger with appropriate formatting."""
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)

    handler.setFormatter(JSONFormatter(environment) if json_output else DevFormatter())

    # Order matters: context fields first, defaults fill whatever is still missing.
    handler.addFilter(ContextFilter())
    handler.addFilter(DefaultCorrelationFilter())
    handler.addFilter(PIIFilter())

    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level.upper()))

    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
