"""
Logging configuration for plate_kinematics_engine.

Log level is read from the PKE_LOGLEVEL environment variable
(DEBUG, INFO, WARNING, ERROR, CRITICAL). Default is WARNING, so only
reconstruction diagnostics of warning severity and above reach the console.

Usage
-----
>>> from plate_kinematics_engine.logging import get_logger
>>> logger = get_logger(__name__)
>>> logger.info("world reconstructed")
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Optional

LOGGER_NAME = "plate_kinematics_engine"

DEFAULT_LOG_LEVEL = "WARNING"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FORMAT_SIMPLE = "%(levelname)s: %(message)s"

_logging_configured = False

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def _get_log_level_from_env() -> int:
    level_name = os.environ.get("PKE_LOGLEVEL", DEFAULT_LOG_LEVEL).upper()
    return _LEVELS.get(level_name, logging.WARNING)


def configure_logging(
    level: Optional[int] = None,
    format_string: Optional[str] = None,
    stream: Optional[object] = None,
) -> None:
    """
    Configure the package logger.

    Called on first use of get_logger; call again to reconfigure.

    Parameters
    ----------
    level : int, optional
        Logging level. If None, read from PKE_LOGLEVEL.
    format_string : str, optional
        Message format. Simple for INFO and above, detailed for DEBUG.
    stream : file-like, optional
        Destination stream. Default is sys.stderr.
    """
    global _logging_configured

    if level is None:
        level = _get_log_level_from_env()

    if format_string is None:
        format_string = LOG_FORMAT_SIMPLE if level >= logging.INFO else LOG_FORMAT

    if stream is None:
        stream = sys.stderr

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.handlers.clear()

    handler = logging.StreamHandler(stream)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(format_string))
    logger.addHandler(handler)
    logger.propagate = False

    _logging_configured = True


def get_logger(name: str) -> logging.Logger:
    """Return a logger namespaced under the package logger."""
    if not _logging_configured:
        configure_logging()

    if not name.startswith(LOGGER_NAME):
        name = f"{LOGGER_NAME}.{name}"

    return logging.getLogger(name)


def set_log_level(level: int) -> None:
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    for handler in logger.handlers:
        handler.setLevel(level)
