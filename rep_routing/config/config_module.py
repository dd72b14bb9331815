"""
Configuration management for the rep route planner.

Loads environment variables (optionally from a .env file) and reads typed
configuration values.
"""

import os
import logging
from typing import Any, Optional
from dotenv import load_dotenv


class ConfigError(Exception):
    """Raised when configuration is missing or cannot be parsed."""
    pass


def load_config(env_path: str = ".env") -> None:
    """
    Load environment variables from a .env file.

    Args:
        env_path: Path to the .env file (default: ".env")
    """
    logger = logging.getLogger(__name__)

    if os.path.exists(env_path):
        load_dotenv(env_path, override=True)
        logger.info(f"Loaded configuration from {env_path}")
    else:
        logger.warning(f"Configuration file {env_path} not found, using system environment variables only")


def get_config(key: str, default: Any = None) -> Any:
    """
    Get a configuration value from environment variables.

    Args:
        key: Environment variable key
        default: Default value if key not found

    Returns:
        Configuration value or default
    """
    logger = logging.getLogger(__name__)

    value = os.getenv(key)

    if value is None:
        if default is not None:
            logger.debug(f"Configuration key '{key}' not set, using default value: {default}")
        else:
            logger.warning(f"Configuration key '{key}' not found and no default provided")
        return default

    return value


def get_float_config(key: str, default: Optional[float] = None) -> Optional[float]:
    """
    Get a configuration value parsed as a float.

    Raises:
        ConfigError: If the value is set but is not a number
    """
    value = get_config(key, default)
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"Configuration key '{key}' must be a number, got {value!r}")


def get_int_config(key: str, default: Optional[int] = None) -> Optional[int]:
    """
    Get a configuration value parsed as an integer.

    Raises:
        ConfigError: If the value is set but is not an integer
    """
    value = get_config(key, default)
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"Configuration key '{key}' must be an integer, got {value!r}")
