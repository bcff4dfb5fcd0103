"""
Petalwise - Logging
====================
One stdout handler is attached to the ``petalwise`` parent logger;
every module logger is a child of it, so records share a single
format and never reach the root logger twice.

Level resolution (first match wins):
  1. the ``level`` argument of ``get_logger``
  2. ``settings.LOG_LEVEL``
  3. ``settings.ENV``: ``dev`` → DEBUG, ``prod`` → WARNING

Messages carry a component tag, e.g. ``[STORE]``, ``[RAG]``,
``[PREDICT]``, so one pipeline run can be followed with ``grep``.

Usage:
    from petalwise.src.utils.logger import get_logger
    logger = get_logger(__name__)
    logger.info("[RAG] Retrieved %d context(s)", n)
"""

import logging
import sys

from petalwise.config.settings import settings

PACKAGE_LOGGER = "petalwise"

_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_ENV_LEVELS = {"dev": logging.DEBUG, "prod": logging.WARNING}


def _default_level() -> int:
    if settings.LOG_LEVEL:
        return logging.getLevelName(settings.LOG_LEVEL)
    return _ENV_LEVELS.get(settings.ENV, logging.INFO)


def _package_logger() -> logging.Logger:
    parent = logging.getLogger(PACKAGE_LOGGER)
    if not parent.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(fmt=_LOG_FORMAT, datefmt=_DATE_FORMAT))
        parent.addHandler(handler)
        parent.setLevel(_default_level())
        parent.propagate = False
    return parent


def get_logger(name: str, level: int | None = None) -> logging.Logger:
    """
    Return a logger under the ``petalwise`` hierarchy.

    Args:
        name:  Usually ``__name__``.  Names outside the package (such as
               ``"__main__"`` when a script is run directly) are nested
               under ``petalwise.`` so they share the handler.
        level: Optional per-logger override.

    Returns:
        The configured ``logging.Logger``.
    """
    _package_logger()
    if name != PACKAGE_LOGGER and not name.startswith(PACKAGE_LOGGER + "."):
        name = f"{PACKAGE_LOGGER}.{name}"

    logger = logging.getLogger(name)
    if level is not None:
        logger.setLevel(level)
    return logger
