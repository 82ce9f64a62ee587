"""Segmented firmware bundles for ESP32 targets.

ESP32 builds produce separate images for the second-stage bootloader, the
partition table and the application. Each is base64-encoded on its own so
the bundle travels as JSON; an image that was not produced is None rather
than missing, so "not produced" and "empty" stay distinguishable.

arduino-cli output directory layout (sketch "sketch"):
    sketch.ino.bootloader.bin   # optional
    sketch.ino.partitions.bin   # optional
    sketch.ino.bin              # application, required
"""

import base64
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

PARTITIONS_OFFSET = 0x8000
APPLICATION_OFFSET = 0x10000


class FirmwareBundleError(Exception):
    """Raised when a firmware bundle cannot be assembled."""

    pass


@dataclass
class FirmwareBundle:
    """Base64-encoded firmware segments plus their flash offsets."""

    application: str
    bootloader: Optional[str] = None
    partitions: Optional[str] = None
    chip: Optional[str] = None
    bootloader_offset: int = 0x0
    partitions_offset: int = PARTITIONS_OFFSET
    application_offset: int = APPLICATION_OFFSET

    def segment_bytes(self, name: str) -> Optional[bytes]:
        """Decode one segment ("bootloader", "partitions" or "application")."""
        value = getattr(self, name)
        return base64.b64decode(value) if value is not None else None

    def to_dict(self) -> Dict[str, object]:
        """Convert to dictionary for JSON serialization."""
        return {
            "chip": self.chip,
            "bootloader": self.bootloader,
            "partitions": self.partitions,
            "application": self.application,
            "offsets": {
                "bootloader": hex(self.bootloader_offset),
                "partitions": hex(self.partitions_offset),
                "application": hex(self.application_offset),
            },
        }


def bootloader_offset_for(chip: Optional[str]) -> int:
    """Flash offset of the second-stage bootloader for a chip.

    Args:
        chip: MCU name (e.g., "esp32", "esp32s3")

    Returns:
        Offset in bytes
    """
    if chip in ("esp32", "esp32s2"):
        return 0x1000
    if chip == "esp32p4":
        return 0x2000
    return 0x0


def assemble_firmware_bundle(output_dir: Path, sketch_name: str, chip: Optional[str] = None) -> FirmwareBundle:
    """Read the segment images from a build output directory.

    Args:
        output_dir: Directory passed to arduino-cli --output-dir
        sketch_name: Sketch name (the .ino stem)
        chip: MCU name used to pick the bootloader offset

    Returns:
        FirmwareBundle with absent optional segments set to None

    Raises:
        FirmwareBundleError: If the application image is missing
    """
    output_dir = Path(output_dir)
    stem = f"{sketch_name}.ino"

    application = _read_segment(output_dir / f"{stem}.bin")
    if application is None:
        raise FirmwareBundleError(f"Application image not found: {output_dir / f'{stem}.bin'}")

    return FirmwareBundle(
        application=application,
        bootloader=_read_segment(output_dir / f"{stem}.bootloader.bin"),
        partitions=_read_segment(output_dir / f"{stem}.partitions.bin"),
        chip=chip,
        bootloader_offset=bootloader_offset_for(chip),
    )


def _read_segment(path: Path) -> Optional[str]:
    if not path.is_file():
        return None
    return base64.b64encode(path.read_bytes()).decode("ascii")
