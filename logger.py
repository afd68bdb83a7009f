"""
logger.py

Responsibility: Configures process-wide logging and provides the adapter that
tags instance-level messages with their record name.
Does NOT: write log files, rotate or clean up logs, or format HTTP responses.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import MutableMapping
from typing import Any

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

# Third-party loggers that are too chatty below WARNING
_NOISY_LOGGERS = ("httpx", "httpcore", "apscheduler")


def configure_logging(level: str = "info") -> None:
    """
    Installs a single stdout handler on the root logger.

    Args:
        level: One of "debug", "info", "warning", "error" (case-insensitive).

    Raises:
        ValueError: If `level` is not a known level name.
    """
    try:
        numeric = LOG_LEVELS[level.lower()]
    except KeyError:
        raise ValueError(f"unknown log level: {level!r}") from None

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(numeric)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(numeric if numeric == logging.DEBUG else logging.WARNING)


class RecordLoggerAdapter(logging.LoggerAdapter):
    """Prefixes every message with the record it concerns."""

    def __init__(self, logger: logging.Logger, record_name: str) -> None:
        super().__init__(logger, {"record": record_name})

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        return f"[record={self.extra['record']}] {msg}", kwargs
