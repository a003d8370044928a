"""
Tala - Logging
===============
Pre-configured logger factory shared by every Tala module.

Logging verbosity is driven by ``settings.ENV``:
  • ``"dev"``  → DEBUG level  (ranking decisions, cache hits)
  • ``"prod"`` → WARNING level (degradations and failures only)

Usage:
    from tala.src.utils.logger import get_logger
    logger = get_logger(__name__)
    logger.info("[SYNC] Snapshot published")
"""

import logging
import sys

from tala.config.settings import settings

_ENV_LEVEL_MAP = {
    "dev": logging.DEBUG,
    "prod": logging.WARNING,
}
_DEFAULT_LEVEL = _ENV_LEVEL_MAP.get(settings.ENV, logging.INFO)

_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_logger(name: str, level: int | None = None) -> logging.Logger:
    """
    Create and return a named logger with a standardised formatter.

    Args:
        name:  Typically ``__name__`` of the calling module.
        level: Explicit logging level override.
               If *None*, the level is derived from ``settings.ENV``.

    Returns:
        A configured ``logging.Logger`` instance.
    """
    resolved_level = level if level is not None else _DEFAULT_LEVEL
    logger = logging.getLogger(name)

    if not logger.handlers:
        logger.setLevel(resolved_level)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(resolved_level)
        console_handler.setFormatter(logging.Formatter(fmt=_LOG_FORMAT, datefmt=_DATE_FORMAT))
        logger.addHandler(console_handler)

    return logger


def truncate_for_log(text: str, limit: int = 50) -> str:
    """Shorten a user query for log lines."""
    return text if len(text) <= limit else text[:limit] + "…"
