"""Logging setup for the ``usage_monitor`` logger hierarchy."""
from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from . import config

LOGGER_NAME = 'usage_monitor'
LOG_FORMAT = '[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s'


def configure_logging(level: int | str | None = None, log_file: Path | None = config.LOG_FILE) -> logging.Logger:
    """Attach a rotating file handler to the package logger.

    Parameters
    ----------
    level : int, str or None
        Log level; defaults to ``$USAGE_MONITOR_LOG_LEVEL``, or ``INFO`` if that is
        unset or not a known level name.
    log_file : Path or None
        Target file.  ``None`` or an unwritable location logs to stderr instead.

    Returns
    -------
    logging.Logger
        The configured ``usage_monitor`` logger.
    """
    if level is None:
        level = os.environ.get(config.LOG_LEVEL_ENV, 'INFO').upper()
        if not isinstance(logging.getLevelName(level), int):
            level = 'INFO'

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    handler: logging.Handler
    try:
        if log_file is None:
            raise OSError('no log file configured')
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            log_file, maxBytes=config.LOG_MAX_BYTES, backupCount=config.LOG_BACKUP_COUNT, encoding='utf-8',
        )
    except OSError:
        handler = logging.StreamHandler(sys.stderr)

    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    return logger


def mask(secret: str | None, visible: int = 8) -> str:
    """Return a log-safe prefix of *secret*."""
    if not secret:
        return '<none>'
    return f'{secret[:visible]}...' if len(secret) > visible else '***'
