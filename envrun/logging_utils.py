"""Logging helpers for EnvRun."""

from __future__ import annotations

import logging
import sys

LOGGER_NAME = "envrun"
HANDLER_NAME = "envrun-stderr"


def configure_logging(level: str | int = logging.WARNING) -> logging.Logger:
    """Configure and return the package logger.

    Log records go to stderr, next to the child's own stderr output. Calling
    this again adjusts the level, and rebinds the handler when ``sys.stderr``
    has been replaced since the last call.
    """
    logger = logging.getLogger(LOGGER_NAME)
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.WARNING)
    logger.setLevel(level)

    for handler in list(logger.handlers):
        if handler.get_name() == HANDLER_NAME and handler.stream is not sys.stderr:
            logger.removeHandler(handler)

    if not logger.handlers:
        formatter = logging.Formatter(
            fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        )
        ch = logging.StreamHandler(sys.stderr)
        ch.set_name(HANDLER_NAME)
        ch.setFormatter(formatter)
        logger.addHandler(ch)
        logger.propagate = False

    for handler in logger.handlers:
        handler.setLevel(level)
    return logger
