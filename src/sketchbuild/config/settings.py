"""Runtime settings for sketchbuild.

Settings come from code (dataclass fields) with a small set of environment
variable overrides:

    ARDUINO_CLI_PATH                 Path to the arduino-cli executable
    ARDUINO_CONFIG_FILE              arduino-cli configuration file (--config-file)
    SKETCHBUILD_BUILD_DIR            Root for per-call temporary build directories
    SKETCHBUILD_KEEP_FAILED_BUILDS   Retain the build directory of a failed call
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

CLI_PATH_ENV = "ARDUINO_CLI_PATH"
CONFIG_FILE_ENV = "ARDUINO_CONFIG_FILE"
BUILD_DIR_ENV = "SKETCHBUILD_BUILD_DIR"
KEEP_FAILED_BUILDS_ENV = "SKETCHBUILD_KEEP_FAILED_BUILDS"

MIB = 1024 * 1024


@dataclass
class TimeoutBudget:
    """Per-operation timeouts in seconds."""

    core_install: float = 600.0
    library_install: float = 60.0
    compile: float = 30.0
    large_compile: float = 300.0
    upload: float = 60.0
    listing: float = 10.0


@dataclass
class OutputLimits:
    """Ceilings for captured subprocess output, in bytes."""

    compile: int = 16 * MIB
    listing: int = 1 * MIB


@dataclass
class ToolchainSettings:
    """Settings shared by the invoker, resolver and orchestrator."""

    cli_path: Optional[Path] = None
    config_file: Optional[Path] = None
    build_root: Optional[Path] = None
    keep_failed_builds: bool = False
    timeouts: TimeoutBudget = field(default_factory=TimeoutBudget)
    output_limits: OutputLimits = field(default_factory=OutputLimits)

    @classmethod
    def from_env(cls) -> "ToolchainSettings":
        """Build settings from environment variables.

        Returns:
            ToolchainSettings with overrides applied
        """
        cli_path = os.environ.get(CLI_PATH_ENV)
        config_file = os.environ.get(CONFIG_FILE_ENV)
        build_root = os.environ.get(BUILD_DIR_ENV)

        return cls(
            cli_path=Path(cli_path) if cli_path else None,
            config_file=Path(config_file) if config_file else None,
            build_root=Path(build_root).resolve() if build_root else None,
            keep_failed_builds=_env_flag(KEEP_FAILED_BUILDS_ENV),
        )


def _env_flag(name: str) -> bool:
    value = os.environ.get(name, "")
    return value.strip().lower() in ("1", "true", "yes", "on")
