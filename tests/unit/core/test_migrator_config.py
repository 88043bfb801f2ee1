#!/usr/bin/env python3
"""Tests for migrator configuration and environment helpers."""

import logging
import os
from unittest.mock import patch

import pytest

from btm_migrator.core.config import DEFAULT_SCHEMA_SEARCH_DIRS, MigratorConfig
from btm_migrator.core.env_utils import getenv_bool, getenv_clean, getenv_int, getenv_list
from btm_migrator.core.logging import setup_logging


class TestEnvUtils:
    """Test suite for environment variable helpers."""

    @patch.dict(os.environ, {"BTM_TEST_VALUE": "DEBUG\r\n"})
    def test_getenv_clean_strips_crlf(self):
        assert getenv_clean("BTM_TEST_VALUE") == "DEBUG"

    @patch.dict(os.environ, {"BTM_TEST_VALUE": "  raw  "})
    def test_getenv_clean_without_strip(self):
        assert getenv_clean("BTM_TEST_VALUE", strip=False) == "  raw  "

    def test_getenv_clean_default(self):
        assert getenv_clean("BTM_TEST_UNSET_VALUE", "fallback") == "fallback"

    @pytest.mark.parametrize("raw,expected", [
        ("true", True), ("YES", True), ("1", True), ("on\r", True),
        ("false", False), ("No", False), ("0", False), ("off", False),
    ])
    def test_getenv_bool(self, raw, expected):
        with patch.dict(os.environ, {"BTM_TEST_FLAG": raw}):
            assert getenv_bool("BTM_TEST_FLAG", not expected) is expected

    @patch.dict(os.environ, {"BTM_TEST_FLAG": "maybe"})
    def test_getenv_bool_invalid_uses_default(self):
        assert getenv_bool("BTM_TEST_FLAG", True) is True

    @patch.dict(os.environ, {"BTM_TEST_INT": "abc"})
    def test_getenv_int_invalid_uses_default(self):
        assert getenv_int("BTM_TEST_INT", 7) == 7

    @patch.dict(os.environ, {"BTM_TEST_INT": " 42 "})
    def test_getenv_int(self):
        assert getenv_int("BTM_TEST_INT", 7) == 42

    @patch.dict(os.environ, {"BTM_TEST_LIST": ".,Schemas, ../shared ,,\r\n"})
    def test_getenv_list(self):
        assert getenv_list("BTM_TEST_LIST") == [".", "Schemas", "../shared"]

    @patch.dict(os.environ, {"BTM_TEST_LIST": " , "})
    def test_getenv_list_empty_items_use_default(self):
        assert getenv_list("BTM_TEST_LIST", ["a"]) == ["a"]


class TestMigratorConfig:
    """Test suite for MigratorConfig."""

    def test_default_values(self):
        config = MigratorConfig()

        assert config.OUTPUT_EXTENSION == ".lml"
        assert config.SCHEMA_SEARCH_DIRS == DEFAULT_SCHEMA_SEARCH_DIRS
        assert config.LOOP_SEGMENT_MARKER == "loop"
        assert config.DETECT_IMPLICIT_LOOPS is True
        assert config.IMPLICIT_LOOP_MIN_SIBLINGS == 3
        assert config.IMPLICIT_LOOP_MIN_DEPTH == 3
        assert config.MAX_BATCH_FILES == 200

    @patch.dict(os.environ, {
        "BTM_LOG_LEVEL": "debug",
        "BTM_OUTPUT_EXTENSION": ".yaml",
        "BTM_SCHEMA_SEARCH_DIRS": "xsd,../xsd",
        "BTM_DETECT_IMPLICIT_LOOPS": "false",
        "BTM_IMPLICIT_LOOP_MIN_SIBLINGS": "5",
        "BTM_MAX_BATCH_FILES": "10",
    })
    def test_environment_variable_override(self):
        config = MigratorConfig()

        assert config.LOG_LEVEL == "DEBUG"
        assert config.OUTPUT_EXTENSION == ".yaml"
        assert config.SCHEMA_SEARCH_DIRS == ["xsd", "../xsd"]
        assert config.DETECT_IMPLICIT_LOOPS is False
        assert config.IMPLICIT_LOOP_MIN_SIBLINGS == 5
        assert config.MAX_BATCH_FILES == 10

    def test_from_yaml(self, tmp_path):
        config_file = tmp_path / "migrator.yaml"
        config_file.write_text("max_batch_files: 3\nDETECT_IMPLICIT_LOOPS: false\n")

        config = MigratorConfig.from_yaml(config_file)

        assert config.MAX_BATCH_FILES == 3
        assert config.DETECT_IMPLICIT_LOOPS is False

    def test_from_yaml_unknown_key_is_ignored(self, tmp_path, caplog):
        config_file = tmp_path / "migrator.yaml"
        config_file.write_text("not_a_setting: 1\n")

        with caplog.at_level(logging.WARNING):
            config = MigratorConfig.from_yaml(config_file)

        assert not hasattr(config, "NOT_A_SETTING")
        assert "not_a_setting" in caplog.text

    def test_from_yaml_rejects_non_mapping(self, tmp_path):
        config_file = tmp_path / "migrator.yaml"
        config_file.write_text("- a\n- b\n")

        with pytest.raises(ValueError):
            MigratorConfig.from_yaml(config_file)

    def test_from_yaml_empty_file(self, tmp_path):
        config_file = tmp_path / "migrator.yaml"
        config_file.write_text("")

        assert MigratorConfig.from_yaml(config_file).MAX_BATCH_FILES == MigratorConfig().MAX_BATCH_FILES


class TestSetupLogging:
    """Test suite for JSON logging setup."""

    def test_sets_root_level(self):
        setup_logging("warning")
        assert logging.getLogger().level == logging.WARNING
        setup_logging("INFO")
        assert logging.getLogger().level == logging.INFO
