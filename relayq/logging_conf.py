"""Logging configuration for relayq."""
import logging
import os
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str | None = None) -> logging.Logger:
    """Attach a console handler to the ``relayq`` logger tree.

    The level defaults to ``RELAYQ_LOG_LEVEL`` (or INFO). Calling it again
    replaces the handler instead of stacking a second one.
    """
    level_name = (level or os.getenv("RELAYQ_LOG_LEVEL", "INFO")).upper()
    logger = logging.getLogger("relayq")
    logger.setLevel(getattr(logging, level_name, logging.INFO))
    logger.handlers = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(console_handler)
    return logger
