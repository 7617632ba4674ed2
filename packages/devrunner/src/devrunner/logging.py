"""Application logging helpers.

The terminal belongs to the UI while a session runs, so devrunner's own
log records go to a file only.
"""

from __future__ import annotations

import logging as py_logging
from pathlib import Path

LOG_LEVELS = {
    "DEBUG": py_logging.DEBUG,
    "INFO": py_logging.INFO,
    "WARN": py_logging.WARNING,
    "WARNING": py_logging.WARNING,
    "ERROR": py_logging.ERROR,
}
DEFAULT_LOG_FILE = Path("~/.devrunner/logs/devrunner.log")
_FORMAT = "%(asctime)s %(levelname)s %(name)s:%(lineno)d %(message)s"


def configure_logging(
    level: str = "INFO",
    log_file: str | Path | None = DEFAULT_LOG_FILE,
) -> py_logging.Logger:
    """
    Configure the "devrunner" logger.

    Args:
        level: DEBUG, INFO, WARN or ERROR (case-insensitive; unknown means INFO)
        log_file: Where records are written; None discards them

    Returns:
        The configured logger
    """
    normalized = level.upper()
    if normalized == "WARNING":
        normalized = "WARN"
    resolved = LOG_LEVELS.get(normalized, py_logging.INFO)

    logger = py_logging.getLogger("devrunner")
    logger.setLevel(resolved)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if log_file is None:
        logger.addHandler(py_logging.NullHandler())
    else:
        log_path = Path(log_file).expanduser()
        if not log_path.is_absolute():
            log_path = log_path.resolve()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = py_logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(resolved)
        file_handler.setFormatter(py_logging.Formatter(_FORMAT))
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger
