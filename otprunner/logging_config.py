"""Logging setup for the ``otprunner`` logger namespace.

Modules log through ``logging.getLogger(__name__)``; this module only
decides where records go:

- ``setup_logging`` sends them to the console through Rich (CLI only).
- ``attach_run_log`` additionally writes them to the run's runner log
  file, which is uploaded as an artifact.
"""

from __future__ import annotations

import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

from otprunner.config import settings

LOGGER_NAME = "otprunner"
RUN_LOG_FORMAT = "%(asctime)s %(levelname)-5s %(message)s"

_run_log_handler: logging.FileHandler | None = None


def setup_logging(level: str | None = None, *, console: Console | None = None) -> None:
    """Configure the ``otprunner`` logger for console output.

    Args:
        level: Log level name; defaults to ``settings.log_level``.
        console: Rich console to log to; stderr when omitted.
    """
    root_logger = logging.getLogger(LOGGER_NAME)
    root_logger.setLevel(_level(level or settings.log_level))

    # Remove console handlers from an earlier call, keep the run log
    for handler in list(root_logger.handlers):
        if isinstance(handler, RichHandler):
            root_logger.removeHandler(handler)

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)


def attach_run_log(path: str | Path) -> logging.FileHandler:
    """Write ``otprunner`` records to *path*, replacing any earlier run log.

    The file is truncated: each run overwrites the previous run's log.
    """
    global _run_log_handler

    root_logger = logging.getLogger(LOGGER_NAME)
    if root_logger.level == logging.NOTSET:
        root_logger.setLevel(_level(settings.log_level))

    detach_run_log()

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, mode="w", encoding="utf-8")
    handler.setFormatter(logging.Formatter(RUN_LOG_FORMAT))
    root_logger.addHandler(handler)
    _run_log_handler = handler
    return handler


def detach_run_log() -> None:
    """Close and remove the current run log handler, if any."""
    global _run_log_handler

    if _run_log_handler is None:
        return
    logging.getLogger(LOGGER_NAME).removeHandler(_run_log_handler)
    _run_log_handler.close()
    _run_log_handler = None


def _level(name: str) -> int:
    return getattr(logging, name.upper(), logging.INFO)
