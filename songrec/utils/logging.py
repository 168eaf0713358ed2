"""
Logging helpers.

Modules get their logger through ``setup_logging(__name__)`` and tag
messages with ``log_with_category``. Handlers are only attached when a
level or a log file is given, which the CLI does once on the package
logger; library users subscribe through the standard logging tree.
"""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

LOG_CATEGORIES = {
    "SIGNATURE": "Signature",
    "STREAM": "Stream",
    "SHAZAM": "Shazam",
    "RECORDER": "Recorder",
    "RECOGNIZER": "Recognizer",
    "CONFIG": "Config",
}

_HANDLER_FLAG = "_songrec_handler"


def setup_logging(
    name: str, log_level: Optional[Union[str, int]] = None, log_file: Optional[str] = None
) -> logging.Logger:
    """Get a logger, optionally configuring its level and handlers.

    Args:
        name: Name of the logger
        log_level: Level to set; when given, a console handler is attached
        log_file: Optional log file path, rotated at 10MB

    Returns:
        logging.Logger: The logger
    """
    logger = logging.getLogger(name)
    if log_level is None and log_file is None:
        return logger

    # Drop handlers from a previous call so repeated setup does not duplicate output
    for handler in [h for h in logger.handlers if getattr(h, _HANDLER_FLAG, False)]:
        logger.removeHandler(handler)
        handler.close()

    if log_level is not None:
        logger.setLevel(log_level.upper() if isinstance(log_level, str) else log_level)

    formatter = logging.Formatter(LOG_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    setattr(console_handler, _HANDLER_FLAG, True)
    logger.addHandler(console_handler)

    if log_file:
        file_path = Path(log_file)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(file_path, maxBytes=10 * 1024 * 1024, backupCount=5)
        file_handler.setFormatter(formatter)
        setattr(file_handler, _HANDLER_FLAG, True)
        logger.addHandler(file_handler)

    return logger


def log_with_category(
    logger: logging.Logger, category: str, level: str, message: str, exc_info: Optional[bool] = None
):
    """
    Log a message prefixed with a category tag.

    Args:
        logger: Logger to use
        category: Message category (e.g. 'SHAZAM', 'STREAM')
        level: Level name ('debug', 'info', 'warning', 'error', 'critical')
        message: Message to log
        exc_info: If True, include exception information
    """
    formatted_message = f"[{category}] {message}"
    method = getattr(logger, level.lower(), None)
    if method is None or level.lower() not in ("debug", "info", "warning", "error", "critical"):
        method = logger.info
    method(formatted_message, exc_info=exc_info)
