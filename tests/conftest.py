"""Shared fixtures for sketchbuild tests.

FakeCli stands in for ArduinoCli. It keeps an in-memory view of installed
cores and libraries, applies install/uninstall commands to it, writes build
outputs on compile, and records every call. Individual commands can be
scripted with queued responses.
"""

import json
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

import pytest

from sketchbuild.build.intel_hex import encode_intel_hex
from sketchbuild.config.settings import ToolchainSettings
from sketchbuild.packages.cli_invoker import CliResult

FIRMWARE_BYTES = bytes(range(40))

Response = Union[Tuple[int, str, str], Exception]


class FakeCli:
    """Scripted arduino-cli replacement."""

    def __init__(self, settings: ToolchainSettings, cores: Optional[Dict[str, str]] = None, libraries: Sequence[str] = ()):
        self.settings = settings
        self.executable = Path("/usr/bin/arduino-cli")
        self.cores: Dict[str, str] = dict(cores or {})
        self.libraries = set(libraries)
        self.calls: List[Tuple[List[str], float]] = []
        self.responses: Dict[str, List[Response]] = {}
        # Version reported after `core upgrade` (None = the requested one)
        self.upgrade_result_version: Optional[str] = None

    def queue(self, command: str, *responses: Response) -> None:
        """Queue responses for a command key ("compile", "upload", "core install", ...)."""
        self.responses.setdefault(command, []).extend(responses)

    def count(self, *prefix: str) -> int:
        """Number of calls whose arguments start with prefix."""
        return sum(1 for args, _timeout in self.calls if args[: len(prefix)] == list(prefix))

    def calls_to(self, *prefix: str) -> List[List[str]]:
        return [args for args, _timeout in self.calls if args[: len(prefix)] == list(prefix)]

    def run(self, args: Sequence[str], timeout: float, max_output_bytes: int) -> CliResult:
        args = list(args)
        self.calls.append((args, timeout))
        key = " ".join(args[:2]) if args[0] in ("core", "lib") else args[0]

        queued = self.responses.get(key)
        if queued:
            response = queued.pop(0)
            if isinstance(response, Exception):
                raise response
            returncode, stdout, stderr = response
        else:
            returncode, stdout, stderr = 0, self._default_stdout(key), ""

        if returncode == 0:
            self._apply(key, args)
        return CliResult(args=args, returncode=returncode, stdout=stdout, stderr=stderr, duration=0.01)

    def version(self) -> CliResult:
        return self.run(["version"], timeout=10, max_output_bytes=1024)

    def _default_stdout(self, key: str) -> str:
        if key == "core list":
            return json.dumps(
                {"platforms": [{"id": core, "installed_version": version} for core, version in self.cores.items()]}
            )
        if key == "lib list":
            return json.dumps(
                {"installed_libraries": [{"library": {"name": name}} for name in sorted(self.libraries)]}
            )
        if key == "version":
            return "arduino-cli  Version: 1.0.4 Commit: 0000000"
        return ""

    def _apply(self, key: str, args: List[str]) -> None:
        if key == "core install":
            name, _, version = args[2].partition("@")
            self.cores[name] = version or "1.0.0"
        elif key == "core upgrade":
            name, _, version = args[2].partition("@")
            self.cores[name] = self.upgrade_result_version or version or self.cores.get(name, "1.0.0")
        elif key == "core uninstall":
            self.cores.pop(args[2], None)
        elif key == "lib install":
            self.libraries.add(args[2])
        elif key == "compile":
            self._write_outputs(args)

    @staticmethod
    def _write_outputs(args: List[str]) -> None:
        fqbn = args[args.index("--fqbn") + 1]
        output_dir = Path(args[args.index("--output-dir") + 1])
        sketch_name = Path(args[-1]).name
        output_dir.mkdir(parents=True, exist_ok=True)
        if fqbn.startswith("esp32:"):
            (output_dir / f"{sketch_name}.ino.bin").write_bytes(FIRMWARE_BYTES)
            (output_dir / f"{sketch_name}.ino.bootloader.bin").write_bytes(b"\xe9boot")
            (output_dir / f"{sketch_name}.ino.partitions.bin").write_bytes(b"\xaa\x50parts")
        else:
            (output_dir / f"{sketch_name}.ino.hex").write_text(encode_intel_hex(FIRMWARE_BYTES))


@pytest.fixture
def settings(tmp_path):
    """Settings that keep build directories under tmp_path."""
    return ToolchainSettings(build_root=tmp_path / "builds")


@pytest.fixture
def fake_cli(settings):
    """A FakeCli with the AVR core already installed."""
    return FakeCli(settings, cores={"arduino:avr": "1.8.6"})
