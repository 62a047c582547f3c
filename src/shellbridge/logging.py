"""Package logger setup: console at the chosen level, full DEBUG trail on disk."""

from __future__ import annotations

import logging as py_logging
import sys
from pathlib import Path
from typing import TextIO

LOGGER_NAME = "shellbridge"
LOG_LEVELS = {
    "DEBUG": py_logging.DEBUG,
    "INFO": py_logging.INFO,
    "WARN": py_logging.WARNING,
    "WARNING": py_logging.WARNING,
    "ERROR": py_logging.ERROR,
}
DEFAULT_LOG_PATH = Path("~/.config/shellbridge/logs/shellbridge.log")
_FALLBACK_LOG_PATH = Path(".shellbridge/logs/shellbridge.log")
_FORMAT = "%(asctime)s %(levelname)s %(name)s:%(lineno)d %(message)s"


def _absolute(path: Path) -> Path:
    try:
        expanded = path.expanduser()
    except RuntimeError:
        # No resolvable home directory.
        expanded = path
    return expanded if expanded.is_absolute() else expanded.resolve()


def default_log_path() -> Path:
    try:
        return DEFAULT_LOG_PATH.expanduser()
    except RuntimeError:
        return (Path.cwd() / _FALLBACK_LOG_PATH).resolve()


def normalize_level(level: str) -> str:
    normalized = level.strip().upper()
    if normalized == "WARNING":
        normalized = "WARN"
    return normalized


def resolve_level(level: str) -> int:
    """Map a level name to its numeric value; unknown names mean INFO."""
    return LOG_LEVELS.get(normalize_level(level), py_logging.INFO)


def _drop_handlers(logger: py_logging.Logger) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def _open_file_handler(log_file: str | Path) -> py_logging.Handler | None:
    path = _absolute(Path(log_file))
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        return py_logging.FileHandler(path, encoding="utf-8")
    except OSError:
        return None


def configure_logging(
    level: str = "INFO",
    stream: TextIO | None = None,
    *,
    log_file: str | Path | None = None,
) -> py_logging.Logger:
    """(Re)configure the ``shellbridge`` logger.

    The console handler filters at ``level``. When ``log_file`` can be opened
    the logger itself runs at DEBUG so the file receives every record.
    """
    console_level = resolve_level(level)
    formatter = py_logging.Formatter(_FORMAT)

    logger = py_logging.getLogger(LOGGER_NAME)
    _drop_handlers(logger)

    console = py_logging.StreamHandler(stream or sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(formatter)
    logger.addHandler(console)

    file_handler = _open_file_handler(log_file) if log_file else None
    if file_handler is not None:
        file_handler.setLevel(py_logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.setLevel(py_logging.DEBUG if file_handler is not None else console_level)
    logger.propagate = False
    return logger
