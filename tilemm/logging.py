"""Logging helpers. All tilemm loggers are children of the ``tilemm`` logger."""

from __future__ import annotations

import logging
from typing import Optional, Union

from tilemm.env import get_tilemm_log_level

_ROOT_LOGGER_NAME = "tilemm"
_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the ``tilemm`` namespace.

    Parameters
    ----------
    name : str
        The component name, e.g. ``"Session"``.

    Returns
    -------
    logging.Logger
        The logger named ``tilemm.<name>``.
    """
    return logging.getLogger(f"{_ROOT_LOGGER_NAME}.{name}")


def configure_logging(level: Optional[Union[str, int]] = None) -> logging.Logger:
    """Attach a stream handler to the ``tilemm`` logger and set its level.

    Calling this more than once replaces the handler installed by the previous call instead of
    adding another one.

    Parameters
    ----------
    level : Optional[Union[str, int]]
        Logging level name or number. Default is the ``TILEMM_LOG_LEVEL`` environment variable,
        or ``WARNING``.

    Returns
    -------
    logging.Logger
        The configured ``tilemm`` root logger.
    """
    logger = logging.getLogger(_ROOT_LOGGER_NAME)
    if level is None:
        level = get_tilemm_log_level()
    if isinstance(level, str):
        level = getattr(logging, level.upper())
    logger.setLevel(level)

    for handler in list(logger.handlers):
        if getattr(handler, "_tilemm_handler", False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(_FORMAT))
    handler._tilemm_handler = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    logger.propagate = False
    return logger
