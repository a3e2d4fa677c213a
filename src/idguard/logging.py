"""Logging setup for idguard.

Library modules only call ``logging.getLogger(__name__)``. Applications that
want readable console output call :func:`init_logging` once at startup.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

TRACE_LEVEL = 5
ROOT_LOGGER_NAME = "idguard"

logging.addLevelName(TRACE_LEVEL, "TRACE")


def init_logging(level: int | str = "INFO", *, rich: bool = True) -> logging.Logger:
    """Configure the ``idguard`` logger.

    Args:
        level: Level name (``"TRACE"``, ``"DEBUG"``, ...) or number.
        rich: Use a :class:`rich.logging.RichHandler`, otherwise a plain
            stream handler.

    Returns:
        The configured ``idguard`` logger.

    Raises:
        ValueError: If the level name is unknown.
    """
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown log level: {level!r}")
        level = resolved

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler: logging.Handler
    if rich:
        handler = RichHandler(
            console=Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
            markup=False,
        )
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    else:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)-8s %(name)s: %(message)s"))

    handler.setLevel(level)
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
    return logger


__all__ = [
    "ROOT_LOGGER_NAME",
    "TRACE_LEVEL",
    "init_logging",
]
