"""
Centralized Logging Utility

All reminder modules log through children of the package logger "reminders".
Handlers are attached once, to that package logger:
- console handler at INFO
- file handler at DEBUG on LOGS_DIR/LOG_FILENAME, only when LOG_TO_FILE is set

DEBUG is the only level that may carry provider detail (response bodies,
raw SMTP replies); records at INFO and above identify recipients by user id.
"""

import logging
from pathlib import Path
from typing import Optional

from reminders import config

PACKAGE_LOGGER_NAME = "reminders"

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def configure_logging(log_to_file: Optional[bool] = None, logs_dir: Optional[str] = None) -> logging.Logger:
    """
    Attach handlers to the package logger if it has none yet.

    Args:
        log_to_file: Add the DEBUG file handler (default: config.LOG_TO_FILE)
        logs_dir: Directory for the log file (default: config.LOGS_DIR)

    Returns:
        The package logger
    """
    package_logger = logging.getLogger(PACKAGE_LOGGER_NAME)
    if package_logger.handlers:
        return package_logger

    if log_to_file is None:
        log_to_file = config.LOG_TO_FILE
    if logs_dir is None:
        logs_dir = config.LOGS_DIR

    package_logger.setLevel(logging.DEBUG)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    if log_to_file:
        logs_path = Path(logs_dir)
        logs_path.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(logs_path / config.LOG_FILENAME, mode='a', encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        package_logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(formatter)
    package_logger.addHandler(console_handler)

    return package_logger


def reset_logging() -> None:
    """Detach and close the package logger's handlers so the next call reconfigures them."""
    package_logger = logging.getLogger(PACKAGE_LOGGER_NAME)
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()


def get_logger(name: str) -> logging.Logger:
    """
    Get the logger for a reminders module.

    Names outside the package (e.g. "__main__" from a script) are placed under
    it, so every record goes through the package handlers exactly once.

    Example:
        from reminders.logger import get_logger
        logger = get_logger(__name__)
        logger.info("Module initialized")
    """
    configure_logging()
    if name != PACKAGE_LOGGER_NAME and not name.startswith(PACKAGE_LOGGER_NAME + "."):
        name = f"{PACKAGE_LOGGER_NAME}.{name}"
    return logging.getLogger(name)
