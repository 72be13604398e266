"""Application logging helpers."""

from __future__ import annotations

import logging as py_logging
import sys
from pathlib import Path
from typing import TextIO

LOG_LEVELS = {
    "DEBUG": py_logging.DEBUG,
    "INFO": py_logging.INFO,
    "WARN": py_logging.WARNING,
    "WARNING": py_logging.WARNING,
    "ERROR": py_logging.ERROR,
}
DEFAULT_LOG_PATH = Path("~/.config/nodedeck/logs/nodedeck.log")
_FALLBACK_LOG_PATH = Path(".nodedeck/logs/nodedeck.log")
_FORMAT = "%(asctime)s %(levelname)s %(name)s:%(lineno)d %(message)s"


def level_value(level: str) -> int:
    return LOG_LEVELS.get(level.upper(), py_logging.INFO)


def default_log_path() -> Path:
    try:
        resolved = DEFAULT_LOG_PATH.expanduser()
    except RuntimeError:
        resolved = (Path.cwd() / _FALLBACK_LOG_PATH).resolve()
    else:
        if not resolved.is_absolute():
            resolved = resolved.resolve()
    return resolved


def _file_handler(log_file: str | Path) -> py_logging.Handler | None:
    try:
        log_path = Path(log_file).expanduser()
    except RuntimeError:
        log_path = Path(log_file)
    if not log_path.is_absolute():
        log_path = log_path.resolve()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        return py_logging.FileHandler(log_path, encoding="utf-8")
    except OSError:
        return None


def configure_logging(
    level: str = "INFO",
    stream: TextIO | None = None,
    *,
    log_file: str | Path | None = None,
    console_level: str | None = None,
) -> py_logging.Logger:
    """Route the ``nodedeck`` logger to stderr and, when given, a debug log file.

    ``console_level`` raises the floor of the stderr handler only. Live
    sessions use it so ``stream-event``/``session-event`` records stay out of
    the terminal the session is drawing into, while the file keeps them.
    """
    resolved = level_value(level)
    console = max(resolved, level_value(console_level)) if console_level else resolved

    logger = py_logging.getLogger("nodedeck")
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()
    formatter = py_logging.Formatter(_FORMAT)

    handler = py_logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(console)
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    file_handler = _file_handler(log_file) if log_file else None
    if file_handler is not None:
        file_handler.setLevel(py_logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    # The file handler records everything; the logger must not filter it out first.
    logger.setLevel(py_logging.DEBUG if file_handler is not None else resolved)
    logger.propagate = False
    return logger
