# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Logging utilities for the subscription service.

This module provides a centralized logging configuration helper. Handlers and
format are installed once by :func:`configure_logging` from the process entry
point; every other module only asks for a named logger.

The service writes two streams: an info logger for lifecycle events and an
error logger for failures (delivery errors, shutdown problems, fatal startup
errors). Both are children of the ``simple_subscription`` logger so a single
``basicConfig`` call drives them.

Example:
    Typical usage in a module::

        from simple_subscription.logger import get_logger

        logger = get_logger("mailer")
        logger.info("Message queued")
"""

from __future__ import annotations

import logging

ROOT_LOGGER_NAME = "simple_subscription"
LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_logger(name: str | None = None) -> logging.Logger:
    """Retrieve a logger under the ``simple_subscription`` namespace.

    Args:
        name: Child logger name. ``None`` returns the package root logger.

    Returns:
        A ``logging.Logger`` instance bound to the given name.
    """
    if not name:
        return logging.getLogger(ROOT_LOGGER_NAME)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def get_loggers() -> tuple[logging.Logger, logging.Logger]:
    """Return the ``(info_logger, error_logger)`` pair used by the application."""
    return get_logger("info"), get_logger("error")


def configure_logging(level: str = "INFO") -> None:
    """Install the process-wide logging configuration.

    Unknown level names fall back to ``INFO``. ``force=True`` replaces handlers
    installed by earlier calls so repeated configuration does not duplicate
    output.
    """
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        force=True,
    )
