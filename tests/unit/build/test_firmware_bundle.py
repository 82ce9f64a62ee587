"""Unit tests for ESP32 firmware bundles."""

import base64

import pytest

from sketchbuild.build.firmware_bundle import (
    FirmwareBundleError,
    assemble_firmware_bundle,
    bootloader_offset_for,
)


class TestAssembleFirmwareBundle:
    """Test cases for assemble_firmware_bundle."""

    def test_all_segments(self, tmp_path):
        (tmp_path / "sketch.ino.bin").write_bytes(b"app")
        (tmp_path / "sketch.ino.bootloader.bin").write_bytes(b"boot")
        (tmp_path / "sketch.ino.partitions.bin").write_bytes(b"parts")

        bundle = assemble_firmware_bundle(tmp_path, "sketch", chip="esp32s3")

        assert bundle.application == base64.b64encode(b"app").decode("ascii")
        assert bundle.segment_bytes("bootloader") == b"boot"
        assert bundle.segment_bytes("partitions") == b"parts"
        assert bundle.bootloader_offset == 0x0

    def test_missing_optional_segments_are_none(self, tmp_path):
        (tmp_path / "sketch.ino.bin").write_bytes(b"app")

        bundle = assemble_firmware_bundle(tmp_path, "sketch")

        assert bundle.bootloader is None
        assert bundle.partitions is None
        assert bundle.segment_bytes("bootloader") is None

    def test_empty_segment_is_not_absent(self, tmp_path):
        (tmp_path / "sketch.ino.bin").write_bytes(b"app")
        (tmp_path / "sketch.ino.bootloader.bin").write_bytes(b"")

        bundle = assemble_firmware_bundle(tmp_path, "sketch")

        assert bundle.bootloader == ""
        assert bundle.segment_bytes("bootloader") == b""

    def test_missing_application_raises(self, tmp_path):
        (tmp_path / "sketch.ino.bootloader.bin").write_bytes(b"boot")
        with pytest.raises(FirmwareBundleError):
            assemble_firmware_bundle(tmp_path, "sketch")

    def test_to_dict(self, tmp_path):
        (tmp_path / "blink.ino.bin").write_bytes(b"app")

        data = assemble_firmware_bundle(tmp_path, "blink", chip="esp32").to_dict()

        assert data["chip"] == "esp32"
        assert data["bootloader"] is None
        assert data["offsets"] == {"bootloader": "0x1000", "partitions": "0x8000", "application": "0x10000"}


class TestBootloaderOffset:
    """Test cases for bootloader_offset_for."""

    def test_offsets(self):
        assert bootloader_offset_for("esp32") == 0x1000
        assert bootloader_offset_for("esp32s2") == 0x1000
        assert bootloader_offset_for("esp32s3") == 0x0
        assert bootloader_offset_for("esp32c3") == 0x0
        assert bootloader_offset_for(None) == 0x0
