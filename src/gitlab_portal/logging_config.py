"""Logging setup for GitLab Portal.

All modules log below the ``gitlab_portal`` logger. The web server's own
loggers share its handler so request logs and application logs come out
in one format.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from gitlab_portal.config import Config

LOGGER_NAME = "gitlab_portal"

# uvicorn loggers that share the package handler
SERVER_LOGGERS = ("uvicorn.error", "uvicorn.access")

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

_handler: logging.Handler | None = None


def _build_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    return handler


def setup_logging(config: Config) -> None:
    """Install the stderr handler and apply the configured level.

    Safe to call repeatedly: later calls only change the level.

    Args:
        config: Configuration providing ``log_level``
    """
    global _handler

    level = logging.getLevelNamesMapping()[config.log_level.value]
    package_logger = logging.getLogger(LOGGER_NAME)

    first_call = _handler is None
    if _handler is None:
        _handler = _build_handler()
        package_logger.handlers.clear()
        package_logger.addHandler(_handler)
        package_logger.propagate = False

    _handler.setLevel(level)
    package_logger.setLevel(level)

    for name in SERVER_LOGGERS:
        server_logger = logging.getLogger(name)
        server_logger.setLevel(level)
        if _handler not in server_logger.handlers:
            server_logger.handlers = [_handler]
            server_logger.propagate = False

    if first_call:
        package_logger.debug("Logging initialised at %s", config.log_level.value)


def get_logger(name: str) -> logging.Logger:
    """Return the logger for a module, nested under the package logger.

    Args:
        name: Usually the caller's ``__name__``
    """
    if name == LOGGER_NAME or name.startswith(f"{LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{LOGGER_NAME}.{name}")


def reset_logging() -> None:
    """Remove the installed handler so setup_logging starts over (tests)."""
    global _handler
    if _handler is not None:
        for name in (LOGGER_NAME, *SERVER_LOGGERS):
            target = logging.getLogger(name)
            if _handler in target.handlers:
                target.removeHandler(_handler)
    _handler = None
