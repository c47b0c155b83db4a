# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Logging utilities for the mail queue.

Handlers, levels and formats are configured by the entry point (see
:func:`mail_queue.cli.main`) through ``logging.basicConfig()``; library
modules only ask for a named logger.

Example:
    Typical usage in a module::

        from mail_queue.logger import get_logger

        logger = get_logger("MailQueue.drain")
        logger.info("Drain completed")
"""

import logging

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_logger(name: str = "MailQueue") -> logging.Logger:
    """Retrieve a logger instance.

    Args:
        name: The logger name. Defaults to "MailQueue".

    Returns:
        A ``logging.Logger`` instance bound to the given name.
    """
    return logging.getLogger(name)


def configure_logging(level: str = "INFO") -> None:
    """Configure the root logger for command line usage."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
    )
