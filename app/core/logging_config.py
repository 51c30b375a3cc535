# app/core/logging_config.py
import logging
import sys
from typing import Any, List

import structlog

SERVICE_LOGGER = "wholesale"


def build_processors(json_logs: bool) -> List[Any]:
    """structlog chain shared by every wholesale logger; the renderer goes last."""
    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer(colors=False)
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.format_exc_info,
        renderer,
    ]


def setup_logging(level: str = "INFO", *, json_logs: bool = True) -> None:
    """
    Route structlog through stdlib logging on stdout.

    Production writes one JSON object per line; `json_logs=False` gives
    key=value lines for a local terminal.
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, str(level).upper(), logging.INFO),
    )

    structlog.configure(
        processors=build_processors(json_logs),
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


# shared by the API layer, the pricing service and the price cache
logger = structlog.get_logger(SERVICE_LOGGER)
