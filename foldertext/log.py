# foldertext/log.py

"""
Structured logging setup.

Library modules only call :func:`get_logger`; the command line (or an
embedding application) decides on level and rendering once through
:func:`configure_logging`.
"""

from __future__ import annotations

import logging
import sys

import structlog


def configure_logging(level: str | int = "INFO", *, json: bool = False) -> None:
    """
    Configure structlog for console or JSON output on stderr.

    Parameters
    ----------
    level : str | int, default="INFO"
        Minimum level name (``"DEBUG"``, ``"WARNING"``, ...) or numeric level.
    json : bool, default=False
        Render one JSON object per event instead of the coloured console format.
    """
    if isinstance(level, str):
        numeric = logging.getLevelName(level.upper())
        if not isinstance(numeric, int):
            raise ValueError(f"Unknown log level: {level}")
        level = numeric

    renderer = structlog.processors.JSONRenderer() if json else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str) -> structlog.typing.FilteringBoundLogger:
    return structlog.get_logger(name)
