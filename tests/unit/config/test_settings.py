"""
Unit tests for runtime settings.
"""

import os
from pathlib import Path
from unittest.mock import patch

from sketchbuild.config.settings import (
    BUILD_DIR_ENV,
    CLI_PATH_ENV,
    CONFIG_FILE_ENV,
    KEEP_FAILED_BUILDS_ENV,
    ToolchainSettings,
)


class TestToolchainSettings:
    """Test suite for ToolchainSettings."""

    def test_defaults(self):
        settings = ToolchainSettings()
        assert settings.cli_path is None
        assert settings.keep_failed_builds is False
        assert settings.timeouts.core_install == 600.0
        assert settings.timeouts.library_install == 60.0
        assert settings.timeouts.compile == 30.0
        assert settings.timeouts.large_compile > settings.timeouts.compile
        assert settings.output_limits.compile == 16 * 1024 * 1024

    def test_from_env_empty(self):
        with patch.dict(os.environ, {}, clear=True):
            settings = ToolchainSettings.from_env()
        assert settings.cli_path is None
        assert settings.config_file is None
        assert settings.build_root is None
        assert settings.keep_failed_builds is False

    def test_from_env_overrides(self, tmp_path):
        env = {
            CLI_PATH_ENV: "/opt/arduino/arduino-cli",
            CONFIG_FILE_ENV: str(tmp_path / "cli.yaml"),
            BUILD_DIR_ENV: str(tmp_path / "builds"),
            KEEP_FAILED_BUILDS_ENV: "yes",
        }
        with patch.dict(os.environ, env, clear=True):
            settings = ToolchainSettings.from_env()

        assert settings.cli_path == Path("/opt/arduino/arduino-cli")
        assert settings.config_file == tmp_path / "cli.yaml"
        assert settings.build_root == (tmp_path / "builds").resolve()
        assert settings.keep_failed_builds is True

    def test_keep_failed_builds_flag_values(self):
        for value, expected in (("1", True), ("TRUE", True), ("on", True), ("0", False), ("no", False)):
            with patch.dict(os.environ, {KEEP_FAILED_BUILDS_ENV: value}, clear=True):
                assert ToolchainSettings.from_env().keep_failed_builds is expected
