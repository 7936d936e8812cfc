"""Logging setup and the base error type for fmail.

Log events carry key/value context (``logger.info("Moved emails", count=3)``).
Console output goes to stderr; a JSON-lines log file records every event at
debug level so a failed bulk operation can be reconstructed afterwards.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import structlog

from .paths import LOG_FILE


class FmailError(Exception):
    """Base error for fmail.

    ``code`` is the machine-readable error category used in CLI output.
    ``hint`` is optional guidance shown alongside the message.
    """

    code = "general_error"

    def __init__(self, message: str, *, hint: str = ""):
        super().__init__(message)
        self.hint = hint


_SHARED_PROCESSORS = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
]


def get_logger(name: str):
    return structlog.get_logger(name)


def configure_logging(verbose: bool = False, json_log: str | None = "auto") -> None:
    """Route fmail log events to stderr and, optionally, a JSON log file.

    Args:
        verbose: Show debug events on stderr (default shows warnings and up)
        json_log: "auto" for the default state-dir file, "-" for stdout,
            any other string for a file path, None to disable
    """
    structlog.configure(
        processors=[
            *_SHARED_PROCESSORS,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    root = logging.getLogger("fmail")
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.setLevel(logging.DEBUG)
    root.propagate = False

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(logging.DEBUG if verbose else logging.WARNING)
    console.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_SHARED_PROCESSORS,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.dev.ConsoleRenderer(colors=False),
            ],
        )
    )
    root.addHandler(console)

    if json_log is None:
        return

    if json_log == "-":
        file_handler: logging.Handler = logging.StreamHandler(sys.stdout)
    else:
        path = LOG_FILE if json_log == "auto" else Path(json_log)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_SHARED_PROCESSORS,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.dict_tracebacks,
                structlog.processors.JSONRenderer(),
            ],
        )
    )
    root.addHandler(file_handler)
