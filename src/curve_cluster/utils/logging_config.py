"""
Logging setup shared by library modules and scripts.

Usage:
    from curve_cluster.utils.logging_config import get_logger, setup_logging

    setup_logging()            # once, in scripts / entry points
    logger = get_logger(__name__)
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Union

DEFAULT_FORMAT = "%(asctime)s | %(name)-40s | %(levelname)-8s | %(message)s"
ROOT_LOGGER_NAME = "curve_cluster"


def setup_logging(
    level: Optional[Union[int, str]] = None,
    log_file: Optional[Union[str, Path]] = None,
    fmt: str = DEFAULT_FORMAT,
) -> logging.Logger:
    """
    Configure the package logger.

    Handlers are attached to the ``curve_cluster`` logger only, so calling
    this from a host application does not disturb its root logger. Calling it
    again replaces the handlers installed by the previous call.

    Args:
        level: Logging level (name or number). Defaults to the configured
            ``CURVE_CLUSTER_LOG_LEVEL`` (``INFO`` when unset).
        log_file: Optional path; when given, records are also written there.
        fmt: Format string for all handlers.

    Returns:
        The configured package logger.
    """
    if level is None:
        from ..config import config

        level = config.log_level
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level: {level}")

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(fmt)
    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    logger.addHandler(console)

    if log_file is not None:
        file_handler = logging.FileHandler(str(log_file), mode="a", encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger


def get_logger(name: str) -> logging.Logger:
    """Return a logger for *name* (normally ``__name__``)."""
    return logging.getLogger(name)
