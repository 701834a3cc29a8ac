"""Loguru setup for the SwarmDesk server.

Stdlib loggers (uvicorn, sqlalchemy, aiosqlite and the ``swarmdesk``
execution modules, which log through ``logging.getLogger(__name__)``) are
routed into loguru so one sink sees everything.
"""

from __future__ import annotations

import logging
import sys

from loguru import logger

_TEXT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

# Library loggers that are chatty at INFO.
_NOISY = ("uvicorn.access", "sqlalchemy.engine", "aiosqlite", "httpx", "httpcore", "sse_starlette")


class _InterceptHandler(logging.Handler):
    """Re-emit stdlib records through loguru, keeping the caller's location."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(level: str = "INFO", *, json_logs: bool = False) -> None:
    """Make loguru the only sink.

    ``json_logs`` writes one JSON object per line (loguru ``serialize``)
    for log shippers; otherwise a colored text format is used.
    """
    level = level.upper()

    logger.remove()
    if json_logs:
        logger.add(sys.stderr, level=level, serialize=True)
    else:
        logger.add(sys.stderr, level=level, format=_TEXT_FORMAT)

    logging.basicConfig(handlers=[_InterceptHandler()], level=0, force=True)
    quiet = logging.INFO if level == "DEBUG" else logging.WARNING
    for name in _NOISY:
        logging.getLogger(name).setLevel(quiet)

    logger.debug("Logging configured (level={}, json={})", level, json_logs)
