"""CLI utility functions for sketchbuild.

This module provides common utilities used across CLI commands including:
- Sketch and firmware loading
- Error handling and formatting
- Logging setup
"""

import logging
import re
import sys
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from sketchbuild.build.workspace import is_valid_sketch_name

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass
class LoadedSketch:
    """Sketch source read from disk."""

    path: Path
    name: str
    source: str


class SketchLoader:
    """Loads sketch sources from a file or a sketch folder."""

    @staticmethod
    def load(path: Path) -> LoadedSketch:
        """Load a sketch.

        A folder is resolved to `{folder}/{folder}.ino`, or to its only .ino
        file when there is exactly one.

        Args:
            path: .ino file or sketch folder

        Returns:
            LoadedSketch with a sketch name arduino-cli accepts

        Raises:
            FileNotFoundError: If no sketch file can be found
            ValueError: If a folder holds several .ino files and none matches its name
        """
        if path.is_dir():
            preferred = path / f"{path.name}.ino"
            if preferred.is_file():
                sketch_path = preferred
            else:
                sketches = sorted(path.glob("*.ino"))
                if not sketches:
                    raise FileNotFoundError(f"No .ino file found in {path}")
                if len(sketches) > 1:
                    raise ValueError(f"Several .ino files found in {path}; pass one explicitly")
                sketch_path = sketches[0]
        elif path.is_file():
            sketch_path = path
        else:
            raise FileNotFoundError(f"Sketch not found: {path}")

        return LoadedSketch(
            path=sketch_path,
            name=SketchLoader.sketch_name_for(sketch_path),
            source=sketch_path.read_text(encoding="utf-8", errors="replace"),
        )

    @staticmethod
    def sketch_name_for(path: Path) -> str:
        """Derive a valid sketch name from a file name (falls back to "sketch")."""
        name = re.sub(r"[^A-Za-z0-9_.-]+", "_", path.stem).lstrip(".-")
        return name if is_valid_sketch_name(name) else "sketch"


class ErrorFormatter:
    """Formats and displays error messages with ANSI color codes."""

    # ANSI color codes
    RED = "\033[1;31m"
    GREEN = "\033[1;32m"
    YELLOW = "\033[1;33m"
    RESET = "\033[0m"

    @staticmethod
    def print_error(title: str, message: str) -> None:
        """Print formatted error message.

        Args:
            title: Error title (e.g., "Compilation failed")
            message: Error message details
        """
        print()
        print(f"{ErrorFormatter.RED}✗ {title}{ErrorFormatter.RESET}")
        if message:
            print()
            print(message)
        print()

    @staticmethod
    def print_success(message: str) -> None:
        """Print formatted success message."""
        print()
        print(f"{ErrorFormatter.GREEN}✓ {message}{ErrorFormatter.RESET}")

    @staticmethod
    def print_warning(message: str) -> None:
        """Print formatted warning message."""
        print(f"{ErrorFormatter.YELLOW}! {message}{ErrorFormatter.RESET}")

    @staticmethod
    def handle_file_not_found(error: FileNotFoundError) -> None:
        """Handle FileNotFoundError with standard formatting."""
        ErrorFormatter.print_error("Error: File not found", str(error))
        sys.exit(1)

    @staticmethod
    def handle_keyboard_interrupt() -> None:
        """Handle KeyboardInterrupt with standard formatting."""
        ErrorFormatter.print_warning("Interrupted")
        sys.exit(130)  # Standard exit code for SIGINT

    @staticmethod
    def handle_unexpected_error(error: Exception, verbose: bool = False) -> None:
        """Handle unexpected errors with standard formatting.

        Args:
            error: The exception to handle
            verbose: Whether to print traceback
        """
        message = f"{type(error).__name__}: {error}"
        ErrorFormatter.print_error("Unexpected error", message)

        if verbose:
            import traceback

            print("Traceback:")
            print(traceback.format_exc())

        sys.exit(1)


def setup_logging(verbose: bool = False, log_file: Optional[Path] = None) -> None:
    """Configure the root logger for CLI use.

    Args:
        verbose: Log at INFO instead of WARNING
        log_file: Also log to this file (rotating, 10MB x 3)
    """
    level = logging.INFO if verbose else logging.WARNING
    formatter = logging.Formatter(LOG_FORMAT)

    logger = logging.getLogger()
    logger.setLevel(level)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            str(log_file),
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=3,
        )
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
        logger.setLevel(logging.INFO)
