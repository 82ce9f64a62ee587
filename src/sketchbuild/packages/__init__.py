"""Toolchain and package management for sketchbuild.

This module wraps the arduino-cli executable and keeps the cores and
libraries a sketch needs installed.
"""

from .cli_invoker import (
    ArduinoCli,
    CliResult,
    ToolchainError,
    ToolchainNotFoundError,
    ToolchainTimeoutError,
    kill_process_tree,
    resolve_executable,
)
from .dependency_resolver import (
    ComponentId,
    ComponentKind,
    DependencyInstallError,
    DependencyReport,
    DependencyResolver,
    InstallationCache,
    InstallState,
    LibraryOutcome,
)
from .library_detector import HEADER_LIBRARIES, detect_required_libraries

__all__ = [
    "ArduinoCli",
    "CliResult",
    "ToolchainError",
    "ToolchainNotFoundError",
    "ToolchainTimeoutError",
    "kill_process_tree",
    "resolve_executable",
    "ComponentId",
    "ComponentKind",
    "DependencyInstallError",
    "DependencyReport",
    "DependencyResolver",
    "InstallationCache",
    "InstallState",
    "LibraryOutcome",
    "HEADER_LIBRARIES",
    "detect_required_libraries",
]
