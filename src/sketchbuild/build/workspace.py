"""Per-call build workspace.

Each compile or upload call gets its own temporary directory:

    {build_root}/sketchbuild_XXXXXX/
    ├── {sketch_name}/
    │   └── {sketch_name}.ino      # arduino-cli requires folder name == sketch name
    ├── out/
    │   └── {variant_slug}/        # --output-dir, one per variant candidate
    └── firmware.hex               # precompiled uploads only

The directory is removed when the workspace closes, on every exit path. A
workspace marked `retain` (or closed by an exception while
keep_failed_builds is set) is left on disk for inspection.
"""

import logging
import re
import shutil
import tempfile
from pathlib import Path
from typing import Optional

from ..config.settings import ToolchainSettings

_SKETCH_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.-]{0,62}$")


class BuildWorkspace:
    """Temporary directory tree for one orchestration call."""

    def __init__(self, settings: ToolchainSettings, sketch_name: str = "sketch"):
        """Initialize workspace (the directory is created on enter).

        Args:
            settings: Toolchain settings (build_root, keep_failed_builds)
            sketch_name: Sketch name used for the folder and .ino file
        """
        if not is_valid_sketch_name(sketch_name):
            raise ValueError(f"Invalid sketch name: {sketch_name!r}")

        self.settings = settings
        self.sketch_name = sketch_name
        self.retain = False
        self._root: Optional[Path] = None

    def __enter__(self) -> "BuildWorkspace":
        build_root = self.settings.build_root
        if build_root is not None:
            build_root.mkdir(parents=True, exist_ok=True)
        self._root = Path(tempfile.mkdtemp(prefix="sketchbuild_", dir=build_root))
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None and self.settings.keep_failed_builds:
            self.retain = True
        self.close()

    @property
    def root(self) -> Path:
        """Workspace root directory."""
        if self._root is None:
            raise RuntimeError("Workspace is not open")
        return self._root

    @property
    def sketch_dir(self) -> Path:
        """Sketch folder passed to arduino-cli."""
        return self.root / self.sketch_name

    def write_sketch(self, source_code: str) -> Path:
        """Write the sketch source.

        Returns:
            Path to the sketch folder
        """
        self.sketch_dir.mkdir(parents=True, exist_ok=True)
        (self.sketch_dir / f"{self.sketch_name}.ino").write_text(source_code, encoding="utf-8")
        return self.sketch_dir

    def write_firmware(self, hex_text: str) -> Path:
        """Write a precompiled HEX image.

        Returns:
            Path to the written file
        """
        firmware_path = self.root / "firmware.hex"
        firmware_path.write_text(hex_text, encoding="utf-8")
        return firmware_path

    def output_dir(self, fqbn: str) -> Path:
        """Output directory for one variant candidate (created if needed)."""
        output_dir = self.root / "out" / variant_slug(fqbn)
        output_dir.mkdir(parents=True, exist_ok=True)
        return output_dir

    def close(self) -> None:
        """Remove the workspace unless it is retained."""
        if self._root is None:
            return
        if self.retain:
            logging.warning(f"Build directory retained for inspection: {self._root}")
            return
        shutil.rmtree(self._root, ignore_errors=True)
        self._root = None


def variant_slug(fqbn: str) -> str:
    """Filesystem-safe name for an FQBN."""
    return re.sub(r"[^A-Za-z0-9_.-]+", "_", fqbn).strip("_")


def is_valid_sketch_name(name: str) -> bool:
    """Whether a name is accepted by arduino-cli as a sketch name."""
    return bool(name) and bool(_SKETCH_NAME_PATTERN.match(name))
