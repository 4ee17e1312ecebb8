"""Logging setup for applications embedding fetchcache.

The library logs through loguru but stays silent until enabled.
"""

import sys

from loguru import logger

from fetchcache.config import get_settings

_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)


def setup_logging(level: str | None = None) -> int:
    """Enable fetchcache records and send them to stderr.

    Without ``level`` the ``FETCHCACHE_LOG_LEVEL`` setting is used.

    Returns:
        The loguru handler id, for ``logger.remove``.
    """
    if level is None:
        level = get_settings().log_level
    logger.enable("fetchcache")
    return logger.add(
        sys.stderr,
        format=_FORMAT,
        level=level.upper(),
        filter="fetchcache",
    )


__all__ = ["setup_logging"]
