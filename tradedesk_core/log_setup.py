"""
Logging Setup
=============
structlog configuration for applications embedding tradedesk-core.

Usage:
    from tradedesk_core.log_setup import setup_logging

    setup_logging(service_name="tradedesk-dashboard", level="DEBUG", json_output=False)
"""

import logging
import sys
from typing import Any

import structlog


def setup_logging(
    service_name: str,
    level: str = "INFO",
    json_output: bool = True,
) -> Any:
    """
    Configure structlog and the standard library root logger.

    Args:
        service_name: Name bound to every log line as ``service_name``
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: Whether to output JSON (for production)

    Returns:
        A bound structlog logger for the caller
    """
    level_value = getattr(logging, level.upper(), logging.INFO)

    # Library loggers that use the stdlib (httpx, aiohttp) go to the same stream
    root_logger = logging.getLogger()
    root_logger.setLevel(level_value)
    root_logger.handlers.clear()
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level_value)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
    ))
    root_logger.addHandler(handler)

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level_value),
        logger_factory=structlog.PrintLoggerFactory(sys.stdout),
        cache_logger_on_first_use=False,
    )

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(service_name=service_name)

    logger = structlog.get_logger("tradedesk_core")
    logger.info("logging_configured", level=level.upper(), json_output=json_output)
    return logger
