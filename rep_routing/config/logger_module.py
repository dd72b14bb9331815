"""
Logging utilities for the rep route planner.

All modules log through the "rep_routing" logger so the engine's output can
be configured without touching the host application's root logger.
"""

import logging
from pathlib import Path


LOGGER_NAME = "rep_routing"

# Flag to track if logger has been initialized to ensure idempotency
_logger_initialized = False


def get_logger() -> logging.Logger:
    """Return the package logger."""
    return logging.getLogger(LOGGER_NAME)


def initialize_logger(log_level: str = "INFO", log_file: str = "logs/rep_routing.log") -> None:
    """
    Attach console and file handlers to the package logger.

    Calling this more than once is a no-op.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path to log file
    """
    global _logger_initialized

    if _logger_initialized:
        return

    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    logger = get_logger()
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    logger.handlers.clear()

    console_formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    )

    file_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(console_formatter)

    file_handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(file_formatter)

    logger.addHandler(console_handler)
    logger.addHandler(file_handler)

    _logger_initialized = True

    logger.info(f"Logger initialized with level {log_level}, file: {log_file}")


def log_debug(message: str) -> None:
    """Log a debug message."""
    get_logger().debug(message)


def log_info(message: str) -> None:
    """
    Log an info message.

    Args:
        message: Message to log
    """
    get_logger().info(message)


def log_warning(message: str) -> None:
    """
    Log a warning message.

    Args:
        message: Message to log
    """
    get_logger().warning(message)


def log_error(message: str) -> None:
    """
    Log an error message.

    Args:
        message: Message to log
    """
    get_logger().error(message)
