"""
Logging setup for the CodeClaw daemon.

Modules log through ``logging.getLogger(__name__)``. The root handlers render
those records either as plain text or, with ``format = "json"``, as one JSON
object per line through structlog's ``ProcessorFormatter``.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import structlog

_TEXT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def build_formatter(fmt: str = "text") -> logging.Formatter:
    """Return the root handler formatter for *fmt* ("text" or "json")."""
    if fmt != "json":
        return logging.Formatter(_TEXT_FORMAT)
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
        ],
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
    )


def configure_logging(level: str = "INFO", fmt: str = "text", log_path: Path | None = None) -> None:
    """
    Install root handlers: stderr always, plus a file handler when *log_path* is set.

    Calling this more than once replaces the previously installed handlers.
    """
    formatter = build_formatter(fmt)

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    stream = logging.StreamHandler(sys.stderr)
    stream.setFormatter(formatter)
    root.addHandler(stream)

    if log_path is not None:
        log_path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    root.setLevel(level.upper())
    # httpx logs every long-poll request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
