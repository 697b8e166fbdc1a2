"""JSON structured logging for the API process and its scrape tasks."""

import logging
import sys

from pythonjsonlogger.json import JsonFormatter

SERVICE_NAME = "media-vault"

# Chatty at DEBUG; scrape debugging only needs our own loggers
_NOISY_LOGGERS = ("asyncio", "playwright", "redis")


def setup_logging(log_level: str = "INFO") -> None:
    """Send root, uvicorn and scrape logs to stdout as JSON lines."""
    level = getattr(logging, log_level.upper(), logging.INFO)

    formatter = JsonFormatter(
        fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
        rename_fields={"asctime": "timestamp", "levelname": "level", "name": "logger"},
        static_fields={"service": SERVICE_NAME},
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in ("uvicorn", "uvicorn.access", "uvicorn.error"):
        server_logger = logging.getLogger(name)
        server_logger.handlers.clear()
        server_logger.addHandler(handler)
        server_logger.propagate = False

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
