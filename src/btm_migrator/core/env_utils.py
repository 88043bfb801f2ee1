#!/usr/bin/env python3
"""
Helpers for reading migrator settings from environment variables.

Values copied out of .env files edited on Windows frequently carry a
trailing carriage return; every reader here strips that before converting.
"""

import logging
import os
from typing import Optional

logger = logging.getLogger(__name__)

_TRUE_VALUES = ("true", "1", "yes", "on")
_FALSE_VALUES = ("false", "0", "no", "off", "")


def getenv_clean(key: str, default: str = None, strip: bool = True) -> Optional[str]:
    """Read an environment variable with surrounding whitespace removed.

    Args:
        key: Environment variable name
        default: Value returned when the variable is unset
        strip: Strip whitespace and line endings (default: True)

    Returns:
        The cleaned value, or default when the variable is unset

    Example:
        >>> # BTM_LOG_LEVEL=DEBUG\r\n
        >>> getenv_clean("BTM_LOG_LEVEL", "INFO")
        'DEBUG'
    """
    raw_value = os.getenv(key, default)

    if raw_value is None or not strip:
        return raw_value

    cleaned = raw_value.strip()
    if cleaned != raw_value:
        logger.warning(
            f"Environment variable {key} had surrounding whitespace: "
            f"raw={repr(raw_value)}, cleaned={repr(cleaned)}"
        )
    return cleaned


def getenv_bool(key: str, default: bool = False) -> bool:
    """Read an environment variable as a boolean.

    Accepts true/1/yes/on and false/0/no/off in any case. Anything else
    logs a warning and falls back to the default.
    """
    raw_value = getenv_clean(key, None)
    if raw_value is None:
        return default

    lowered = raw_value.lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False

    logger.warning(
        f"Environment variable {key} has unexpected boolean value: {repr(raw_value)}. "
        f"Using default: {default}"
    )
    return default


def getenv_int(key: str, default: int) -> int:
    """Read an environment variable as an integer, falling back on bad input."""
    raw_value = getenv_clean(key, None)
    if raw_value is None:
        return default

    try:
        return int(raw_value)
    except ValueError:
        logger.warning(
            f"Environment variable {key} is not a valid integer: {repr(raw_value)}. "
            f"Using default: {default}"
        )
        return default


def getenv_list(key: str, default: list[str] = None, separator: str = ",") -> list[str]:
    """Read a separator-delimited environment variable as a list of strings.

    Args:
        key: Environment variable name
        default: List returned when the variable is unset or empty
        separator: Item separator (default: ",")

    Returns:
        Non-empty, stripped items

    Example:
        >>> # BTM_SCHEMA_SEARCH_DIRS=.,Schemas,../shared\r\n
        >>> getenv_list("BTM_SCHEMA_SEARCH_DIRS")
        ['.', 'Schemas', '../shared']
    """
    if default is None:
        default = []

    raw_value = getenv_clean(key, None)
    if not raw_value:
        return default

    items = [item.strip() for item in raw_value.split(separator) if item.strip()]
    return items or default
