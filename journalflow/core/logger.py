"""Logging setup for journalflow.

Handlers live on the ``journalflow`` package logger only. Modules log through
``logging.getLogger(__name__)`` and propagate to it, so one call to
``configure_logging`` at startup covers the engine, the services and the API.
"""

import logging
import logging.handlers
import os
from typing import Dict

from journalflow.core.config import Settings

PACKAGE_LOGGER = "journalflow"
LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"
LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def parse_level(level: str) -> int:
    """Map a level name to its logging constant, rejecting unknown names."""
    level_upper = level.upper()
    if level_upper not in LEVELS:
        raise ValueError(f"Invalid log level: {level}. Must be one of: {', '.join(LEVELS)}")
    return getattr(logging, level_upper)


def setup_logger(
    name: str = PACKAGE_LOGGER,
    log_dir: str = "./logs",
    level: str = "INFO",
    file_logging: bool = False,
    console_logging: bool = True,
    max_bytes: int = 10485760,  # 10MB
    backup_count: int = 5,
) -> logging.Logger:
    """Attach console and rotating file handlers to ``name``.

    Calling it again only updates the level; handlers are added once.
    """
    logger = logging.getLogger(name)
    logger.setLevel(parse_level(level))

    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    if file_logging:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            os.path.join(log_dir, f"{name}.log"), maxBytes=max_bytes, backupCount=backup_count
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if console_logging:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger


def apply_module_levels(levels: Dict[str, str]) -> None:
    """Set levels on ``journalflow.*`` module loggers."""
    for name, level in levels.items():
        if name != PACKAGE_LOGGER and not name.startswith(PACKAGE_LOGGER + "."):
            raise ValueError(f"Log level override {name} is outside the {PACKAGE_LOGGER} package")
        logging.getLogger(name).setLevel(parse_level(level))


def configure_logging(settings: Settings) -> logging.Logger:
    """Configure the package logger and module overrides from settings."""
    logger = setup_logger(
        PACKAGE_LOGGER,
        log_dir=settings.log_dir,
        level=settings.log_level,
        file_logging=settings.file_logging,
    )
    apply_module_levels(settings.log_levels)
    return logger
