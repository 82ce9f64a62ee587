"""Unit tests for the sketchbuild command-line interface."""

import json
import sys
from unittest.mock import patch

import pytest

from sketchbuild import cli
from sketchbuild.build.intel_hex import encode_intel_hex
from sketchbuild.build.orchestrator import CompilationResult, ErrorKind


def run_main(*argv):
    with patch.object(sys, "argv", ["sketchbuild", *argv]):
        with pytest.raises(SystemExit) as exc_info:
            cli.main()
    return exc_info.value.code


@pytest.fixture(autouse=True)
def no_logging_setup():
    with patch("sketchbuild.cli.setup_logging"):
        yield


class TestMain:
    """Tests for argument parsing and dispatch."""

    def test_no_command_prints_help(self, capsys):
        assert run_main() == 0
        assert "compile" in capsys.readouterr().out

    def test_boards(self, capsys):
        assert run_main("boards") == 0
        out = capsys.readouterr().out
        assert "arduino-nano" in out
        assert "arduino:avr:nano:cpu=atmega328old" in out

    def test_compile_requires_board(self, tmp_path):
        sketch = tmp_path / "Blink.ino"
        sketch.write_text("void setup() {}\n")
        assert run_main("compile", str(sketch)) == 2


class TestCompileCommand:
    """Tests for the compile command."""

    def test_success_writes_output(self, tmp_path, capsys):
        sketch = tmp_path / "Blink.ino"
        sketch.write_text("void setup() {}\nvoid loop() {}\n")
        output = tmp_path / "out" / "Blink.hex"
        hex_text = encode_intel_hex(b"\x0c\x94")
        result = CompilationResult(
            success=True, chosen_variant="arduino:avr:uno", artifact=b"\x0c\x94", hex_text=hex_text
        )

        with patch("sketchbuild.cli.CompileUploadOrchestrator") as orchestrator_cls:
            orchestrator_cls.return_value.compile_and_maybe_upload.return_value = result
            code = run_main("compile", str(sketch), "-b", "arduino-uno", "-o", str(output))

        assert code == 0
        request = orchestrator_cls.return_value.compile_and_maybe_upload.call_args[0][0]
        assert request.sketch_name == "Blink"
        assert request.board_selector == "arduino-uno"
        assert request.port is None
        assert output.read_text() == hex_text
        assert "Firmware size: 2 bytes" in capsys.readouterr().out

    def test_failure_json(self, tmp_path, capsys):
        sketch = tmp_path / "Blink.ino"
        sketch.write_text("void setup() {\n")
        result = CompilationResult.failure(ErrorKind.COMPILE_ERROR, "Compilation failed", "error: expected '}'")

        with patch("sketchbuild.cli.CompileUploadOrchestrator") as orchestrator_cls:
            orchestrator_cls.return_value.compile_and_maybe_upload.return_value = result
            code = run_main("compile", str(sketch), "-b", "arduino-uno", "--json")

        assert code == 1
        data = json.loads(capsys.readouterr().out)
        assert data["errorKind"] == "compile_error"
        assert data["diagnostics"] == "error: expected '}'"

    def test_missing_sketch(self, tmp_path):
        assert run_main("compile", str(tmp_path / "missing.ino"), "-b", "arduino-uno") == 1


class TestUploadCommand:
    """Tests for the upload command."""

    def test_upload_passes_port_and_variant(self, tmp_path):
        firmware = tmp_path / "firmware.hex"
        firmware.write_text(":00000001FF\n")
        result = CompilationResult(success=True, chosen_variant="arduino:avr:nano:cpu=atmega328old", uploaded=True)

        with patch("sketchbuild.cli.CompileUploadOrchestrator") as orchestrator_cls:
            orchestrator_cls.return_value.upload_firmware.return_value = result
            code = run_main(
                "upload", str(firmware), "-b", "arduino-nano", "-p", "COM3",
                "--variant", "arduino:avr:nano:cpu=atmega328old",
            )

        assert code == 0
        request = orchestrator_cls.return_value.upload_firmware.call_args[0][0]
        assert request.port == "COM3"
        assert request.variant_override == "arduino:avr:nano:cpu=atmega328old"
        assert request.hex_text == ":00000001FF\n"


class TestDoctorCommand:
    """Tests for the doctor command."""

    def test_missing_cli(self, capsys):
        with patch("sketchbuild.cli.ArduinoCli") as cli_cls:
            cli_cls.return_value.executable = None
            assert run_main("doctor") == 1
        assert "arduino-cli not found" in capsys.readouterr().out
