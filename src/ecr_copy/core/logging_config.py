"""Centralized logging configuration for ecr-copy."""

import os
import sys
import logging
from typing import Optional

# Level set with set_log_level, applied to loggers created afterwards too
_level_override: Optional[str] = None


def _resolve_level(level: Optional[str]) -> int:
    if not level:
        level = os.getenv("LOG_LEVEL", "INFO")
    return getattr(logging, level.upper(), logging.INFO)


def setup_logger(
    name: str = "ecr-copy",
    level: Optional[str] = None,
    format_type: str = "structured",
) -> logging.Logger:
    """
    Setup centralized logging with environment variable configuration.

    Args:
        name: Logger name (defaults to "ecr-copy")
        level: Log level override (defaults to the set_log_level level,
            then the env var, then INFO)
        format_type: Logging format ("structured" or "simple")

    Returns:
        Configured logger instance

    Environment Variables:
        LOG_LEVEL: Set logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        LOG_FORMAT: Set format type ("structured" or "simple")
    """
    logger = logging.getLogger(name)

    logger.setLevel(_resolve_level(level or _level_override))

    # Avoid duplicate handlers
    if not logger.handlers:
        # Reports go to stdout, so logs go to stderr
        handler = logging.StreamHandler(sys.stderr)

        env_format = os.getenv("LOG_FORMAT", format_type).lower()

        if env_format == "structured":
            formatter = logging.Formatter(
                "%(asctime)s | %(name)s | %(levelname)-8s | "
                "%(threadName)s | %(funcName)s() | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        else:
            formatter = logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            )

        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.propagate = False
    return logger


def get_logger(name: str = "ecr-copy") -> logging.Logger:
    """
    Get a logger instance with consistent configuration.

    Names without the "ecr-copy" prefix are nested under it, so
    get_logger("scheduler") returns the "ecr-copy.scheduler" logger.
    """
    if name != "ecr-copy" and not name.startswith("ecr-copy."):
        name = f"ecr-copy.{name}"
    return setup_logger(name)


def set_log_level(level: Optional[str]) -> None:
    """
    Change the level of every ecr-copy logger, including loggers created
    later. None drops the override and goes back to LOG_LEVEL.
    """
    global _level_override
    _level_override = level
    log_level = _resolve_level(level)
    for name in list(logging.Logger.manager.loggerDict):
        if name == "ecr-copy" or name.startswith("ecr-copy."):
            logging.getLogger(name).setLevel(log_level)


# Create default logger instance
logger = setup_logger()
