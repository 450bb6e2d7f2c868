"""Application logging utilities."""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from .paths import log_dir

_LOG_FILE_NAME = "securenotes.log"


def configure_logging(verbose: bool = False) -> logging.Logger:
    """Configure a rotating log file in the user data directory.

    The stderr handler only shows warnings unless ``verbose`` is set, so
    normal command output stays clean.
    """
    logger = logging.getLogger("securenotes")
    level = logging.DEBUG if verbose else logging.INFO
    logger.setLevel(level)

    if logger.handlers:
        for handler in logger.handlers:
            if not isinstance(handler, RotatingFileHandler):
                handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
        return logger

    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    log_directory: Path = log_dir()
    handler = RotatingFileHandler(
        log_directory / _LOG_FILE_NAME,
        maxBytes=1_048_576,
        backupCount=5,
        encoding="utf-8",
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    stream_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    logger.addHandler(stream_handler)

    logger.debug("Logger initialised; logs available at %s", handler.baseFilename)
    return logger
