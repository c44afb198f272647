"""
Pirouette - a log/backup rotation tool.

Captures a timestamped snapshot of a source file or directory into a
target directory, then prunes older snapshots with a tiered
hours/days/weeks/months/years retention policy.
"""

import os
import logging
from logging.handlers import RotatingFileHandler
from typing import Optional

__version__ = '0.5.0'


def configure_logging(log_level: int = logging.WARNING, log_dir: Optional[str] = None) -> logging.Logger:
    """Configure the pirouette logger"""
    from pirouette.config import Config

    logger = logging.getLogger('pirouette')
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.setLevel(log_level)

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_formatter = logging.Formatter(
        '[%(asctime)s] %(levelname)s in %(module)s: %(message)s'
    )
    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)

    # File handler, only when a log directory is configured
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(log_dir, 'pirouette.log'),
            maxBytes=Config.LOG_MAX_BYTES,
            backupCount=Config.LOG_BACKUP_COUNT
        )
        file_handler.setLevel(log_level)
        file_formatter = logging.Formatter(
            '[%(asctime)s] %(levelname)s [%(name)s.%(funcName)s:%(lineno)d] %(message)s'
        )
        file_handler.setFormatter(file_formatter)
        logger.addHandler(file_handler)

    logger.debug(f"Logging configured (level: {logging.getLevelName(log_level)})")
    return logger
