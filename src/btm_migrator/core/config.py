#!/usr/bin/env python3
"""
Configuration settings for map conversion.

Defaults suit the usual BizTalk solution layout (schemas next to the map or
in a Schemas folder). Every value can be overridden through environment
variables, or through a YAML file passed to the command line.
"""

import logging
from pathlib import Path
from typing import Any

import yaml

from .env_utils import getenv_bool, getenv_clean, getenv_int, getenv_list

logger = logging.getLogger(__name__)

DEFAULT_SCHEMA_SEARCH_DIRS = [".", "Schemas", "../Schemas", "schemas", "../schemas"]


class MigratorConfig:
    """Conversion settings.

    Values are read from the environment when the instance is created, so a
    fresh instance picks up variables changed after import.
    """

    def __init__(self):
        # Logging
        self.LOG_LEVEL = getenv_clean("BTM_LOG_LEVEL", "INFO").upper()

        # Output file extension used when no explicit output path is given
        self.OUTPUT_EXTENSION = getenv_clean("BTM_OUTPUT_EXTENSION", ".lml")

        # Directories (relative to the map file) searched for schemas named by type
        self.SCHEMA_SEARCH_DIRS = getenv_list("BTM_SCHEMA_SEARCH_DIRS", list(DEFAULT_SCHEMA_SEARCH_DIRS))

        # Loop heuristics
        # EDI repeating groups are named like PO1Loop1, N1Loop1, ...
        self.LOOP_SEGMENT_MARKER = getenv_clean("BTM_LOOP_SEGMENT_MARKER", "loop")
        self.DETECT_IMPLICIT_LOOPS = getenv_bool("BTM_DETECT_IMPLICIT_LOOPS", True)
        self.IMPLICIT_LOOP_MIN_SIBLINGS = getenv_int("BTM_IMPLICIT_LOOP_MIN_SIBLINGS", 3)
        self.IMPLICIT_LOOP_MIN_DEPTH = getenv_int("BTM_IMPLICIT_LOOP_MIN_DEPTH", 3)

        # Batch conversion limit
        self.MAX_BATCH_FILES = getenv_int("BTM_MAX_BATCH_FILES", 200)

    def apply_overrides(self, overrides: dict[str, Any]) -> None:
        """Apply setting overrides, keyed by attribute name (case-insensitive).

        Args:
            overrides: Mapping of setting name to value
        """
        for key, value in overrides.items():
            name = str(key).upper()
            if not hasattr(self, name):
                logger.warning(f"Ignoring unknown configuration key: {key}")
                continue
            setattr(self, name, value)
            logger.debug(f"Configuration override {name}={value!r}")

    @classmethod
    def from_yaml(cls, path: Path) -> "MigratorConfig":
        """Create a configuration from environment defaults plus a YAML file.

        Args:
            path: YAML file containing a flat mapping of setting names

        Returns:
            Configured instance
        """
        config = cls()
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"Configuration file {path} must contain a mapping")

        config.apply_overrides(data)
        return config


# Singleton instance
migrator_config = MigratorConfig()
