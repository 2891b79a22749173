from __future__ import annotations

import logging
from pathlib import Path

LOGGER_NAME = "remarkable_tui"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def get_logger(name: str = LOGGER_NAME) -> logging.Logger:
    if name != LOGGER_NAME and not name.startswith(f"{LOGGER_NAME}."):
        name = f"{LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def configure_file_logging(path: Path, *, debug: bool = False) -> Path:
    """Send package logs to ``path``.

    The terminal belongs to the UI while it runs, so nothing is attached to
    stderr. Calling this again replaces the previous file handler.
    """
    resolved = path.expanduser()
    resolved.parent.mkdir(parents=True, exist_ok=True)
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        if isinstance(handler, logging.FileHandler):
            logger.removeHandler(handler)
            handler.close()
    handler = logging.FileHandler(resolved, encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if debug else logging.INFO)
    logger.propagate = False
    return resolved
