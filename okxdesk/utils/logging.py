"""structlog setup: JSON lines to a file so the TUI keeps the terminal."""
from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import TextIO

import structlog

_stream: TextIO | None = None


def configure_logging(level: str | int = logging.INFO, path: Path | None = None) -> None:
    """Route structlog JSON lines to `path` (stderr when None).

    Calling again replaces the previous log file handle.
    """
    global _stream
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    if _stream is not None:
        _stream.close()
        _stream = None
    if path is not None:
        path.parent.mkdir(parents=True, exist_ok=True)
        _stream = path.open("a", encoding="utf-8")
        stream: TextIO = _stream
    else:
        stream = sys.stderr
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=False,
    )
    logging.basicConfig(format="%(message)s", stream=stream, level=level, force=True)
