from __future__ import annotations

import logging
import sys
from typing import Any

import structlog


class Colors:
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    DEBUG = "\033[36m"
    INFO = "\033[32m"
    WARNING = "\033[33m"
    ERROR = "\033[31m"
    CRITICAL = "\033[35m"

    TIMESTAMP = "\033[90m"


LEVEL_COLORS = {
    logging.DEBUG: Colors.DEBUG,
    logging.INFO: Colors.INFO,
    logging.WARNING: Colors.WARNING,
    logging.ERROR: Colors.ERROR,
    logging.CRITICAL: Colors.CRITICAL,
}


class LibraryFormatter(logging.Formatter):
    """Formatter for stdlib loggers (aiogram, httpx) matching the structlog console layout."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = self.formatTime(record, "%H:%M:%S")
        if not sys.stderr.isatty():
            return f"[{timestamp}] {record.levelname:8} {record.name} {record.getMessage()}"
        level_color = LEVEL_COLORS.get(record.levelno, Colors.INFO)
        return (
            f"{Colors.TIMESTAMP}[{timestamp}]{Colors.RESET} "
            f"{level_color}{Colors.BOLD}{record.levelname:8}{Colors.RESET} "
            f"{Colors.DIM}{record.name}{Colors.RESET} "
            f"{record.getMessage()}"
        )


def setup_logging(level: int = logging.INFO, use_json: bool = False) -> None:
    """
    Configure structlog for the bot and route library logging through the same level.

    Per-message identifiers bound with ``structlog.contextvars`` are merged into
    every event emitted while the message is being handled.

    Args:
        level: Logging level (default: INFO)
        use_json: Render events as JSON lines instead of console output
    """
    if use_json:
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="%H:%M:%S", utc=False),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(LibraryFormatter())
    logging.basicConfig(level=level, handlers=[handler], force=True)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("aiogram").setLevel(max(level, logging.INFO))


def level_from_name(name: str) -> int:
    return getattr(logging, name.upper(), logging.INFO)
