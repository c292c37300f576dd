"""Logging configuration for the chat server."""
import logging
from logging.handlers import RotatingFileHandler

from app.core.config import LOG_FILE, LOG_LEVEL

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging() -> logging.Logger:
    """Attach console (and optional rotating file) handlers to the ``app`` logger."""
    logger = logging.getLogger("app")
    logger.setLevel(LOG_LEVEL.upper())
    if not logger.handlers:
        formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

        console = logging.StreamHandler()
        console.setFormatter(formatter)
        logger.addHandler(console)

        if LOG_FILE:
            file_handler = RotatingFileHandler(LOG_FILE, maxBytes=5 * 1024 * 1024, backupCount=3)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
    return logger
