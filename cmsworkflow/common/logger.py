"""Logging setup for cmsworkflow.

Library modules only ever call ``logging.getLogger(__name__)``; applications
embedding the workflow call :func:`configure_from_settings` once at startup to
attach console and rotating file output to the ``cmsworkflow`` logger tree.
"""

import logging
import logging.handlers
import os
from typing import List, Optional

DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"
ISO_8601 = "%Y-%m-%dT%H:%M:%S"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _parse_level(level: str) -> int:
    name = level.upper()
    if name not in LOG_LEVELS:
        raise ValueError(f"Invalid log level: {level}. Must be one of: {', '.join(LOG_LEVELS)}")
    return getattr(logging, name)


def _handlers(
    name: str,
    log_dir: str,
    file_logging: bool,
    console_logging: bool,
    max_bytes: int,
    backup_count: int,
) -> List[logging.Handler]:
    handlers: List[logging.Handler] = []
    if file_logging:
        os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.handlers.RotatingFileHandler(
            os.path.join(log_dir, f"{name}.log"),
            maxBytes=max_bytes,
            backupCount=backup_count,
        ))
    if console_logging:
        handlers.append(logging.StreamHandler())
    return handlers


def setup_logger(
    name: str,
    log_dir: str = "/var/log/cmsworkflow",
    level: str = "INFO",
    log_format: Optional[str] = None,
    date_format: Optional[str] = None,
    file_logging: bool = True,
    console_logging: bool = True,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> logging.Logger:
    """Attach file and/or console handlers to a named logger.

    Calling it again for the same name only updates the level.

    Args:
        name: Logger name, also the log file name inside ``log_dir``
        log_dir: Directory for the rotating log file
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        log_format: Record format, defaults to :data:`DEFAULT_FORMAT`
        date_format: Timestamp format, ISO 8601 by default
        file_logging: Write to ``<log_dir>/<name>.log``
        console_logging: Write to stderr
        max_bytes: Size at which the log file is rotated
        backup_count: Rotated files to keep

    Returns:
        The configured logger
    """
    logger = logging.getLogger(name)
    logger.setLevel(_parse_level(level))

    if logger.handlers:
        return logger

    formatter = logging.Formatter(log_format or DEFAULT_FORMAT, datefmt=date_format or ISO_8601)
    for handler in _handlers(name, log_dir, file_logging, console_logging, max_bytes, backup_count):
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger


def configure_from_settings(settings=None) -> logging.Logger:
    """Configure the ``cmsworkflow`` logger tree from application settings."""
    if settings is None:
        from cmsworkflow.core.config import get_settings

        settings = get_settings()

    return setup_logger(
        "cmsworkflow",
        log_dir=settings.log_dir,
        level=settings.log_level,
        file_logging=settings.log_to_file,
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
