"""Logging setup for ShortSEO."""

import logging


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level: int = logging.INFO) -> logging.Logger:
    """
    Attach a stream handler to the ``shortseo`` logger.

    Safe to call more than once; the handler is only added the first time.

    Args:
        level: Log level for the package logger.

    Returns:
        The package logger.
    """
    logger = logging.getLogger("shortseo")
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    logger.setLevel(level)
    return logger
