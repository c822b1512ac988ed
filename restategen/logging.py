"""Log setup for the watcher process.

Every component logs through ``restategen.<component>``; the console shows
one ``[restategen] LEVEL message`` line per event, and ``log_file`` keeps a
timestamped copy for long-running sessions.
"""

from __future__ import annotations

import logging
from pathlib import Path

_LOGGER_NAME = "restategen"
_CONSOLE_FORMAT = "[restategen] %(levelname)s %(message)s"
_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Libraries whose DEBUG output drowns out regeneration messages.
_QUIET_LIBRARIES = ("watchdog",)


def get_logger(name: str | None = None) -> logging.Logger:
    """Return ``restategen.<name>``, or the package logger when name is empty."""
    return logging.getLogger(f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME)


def _handler(handler: logging.Handler, level: int, fmt: str) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt))
    return handler


def configure_logging(
    *, verbose: bool = False, log_file: Path | None = None
) -> logging.Logger:
    """Route watcher logs to stderr and, when configured, to ``log_file``.

    Safe to call more than once; earlier handlers are replaced.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    for existing in list(logger.handlers):
        logger.removeHandler(existing)
        existing.close()

    logger.addHandler(_handler(logging.StreamHandler(), level, _CONSOLE_FORMAT))
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.addHandler(
            _handler(logging.FileHandler(log_file, encoding="utf-8"), level, _FILE_FORMAT)
        )

    for library in _QUIET_LIBRARIES:
        logging.getLogger(library).setLevel(logging.WARNING)
    return logger


__all__ = ["configure_logging", "get_logger"]
