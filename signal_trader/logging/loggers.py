"""Logger factories for signal, trade and engine events."""

from __future__ import annotations

import logging
import os

LOG_FORMAT = "%(asctime)s | {tag} | %(levelname)s | %(message)s"


def _tagged_logger(name: str, tag: str) -> logging.Logger:
    logger = logging.getLogger(name)
    # Other handlers (e.g. test log capture) may already be attached.
    if not any(type(h) is logging.StreamHandler for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT.format(tag=tag)))
        logger.addHandler(handler)
        logger.setLevel(os.environ.get("LOG_LEVEL", "INFO").upper())
        logger.propagate = False
    return logger


def get_signal_logger() -> logging.Logger:
    """Return configured signal logger instance."""
    return _tagged_logger("signal_log", "SIGNAL")


def get_trade_logger() -> logging.Logger:
    """Return configured trade logger instance."""
    return _tagged_logger("trade_log", "TRADE")


def configure_logging(level: str | None = None) -> None:
    """Set up root logging for the module-level loggers of the package."""
    logging.basicConfig(
        level=(level or os.environ.get("LOG_LEVEL", "INFO")).upper(),
        format=LOG_FORMAT.format(tag="ENGINE"),
    )
