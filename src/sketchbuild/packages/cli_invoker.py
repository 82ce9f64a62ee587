"""arduino-cli invocation.

This module runs the arduino-cli executable as a subprocess with a bounded
timeout and a ceiling on captured output.

Design:
    - The executable is resolved once, at construction:
        1. ARDUINO_CLI_PATH (or an explicit path in settings)
        2. OS-specific install locations
        3. The PATH search (shutil.which)
    - Every call gets its own timeout; on expiry the whole process tree
      (arduino-cli plus avrdude/esptool children) is killed
    - Output is streamed into bounded buffers; beyond the ceiling only the
      tail is kept, where arduino-cli prints its error summary
"""

import logging
import platform
import shutil
import subprocess
import threading
import time
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Deque, List, Optional, Sequence

import psutil

from ..config.settings import ToolchainSettings

EXECUTABLE_NAME = "arduino-cli"
TRUNCATION_MARKER = "[... {count} bytes truncated ...]\n"
READ_CHUNK_SIZE = 64 * 1024
READER_JOIN_TIMEOUT = 5.0


class ToolchainError(Exception):
    """Base exception for toolchain invocation errors."""

    pass


class ToolchainNotFoundError(ToolchainError):
    """Raised when the arduino-cli executable cannot be located."""

    pass


class ToolchainTimeoutError(ToolchainError):
    """Raised when an arduino-cli call exceeds its timeout."""

    def __init__(self, args: Sequence[str], timeout: float, stdout: str = "", stderr: str = ""):
        self.args_list = list(args)
        self.timeout = timeout
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(
            f"arduino-cli {' '.join(self.args_list[:2])} timed out after {timeout:g}s"
        )

    @property
    def output(self) -> str:
        """Partial output captured before the process was killed."""
        return _join_output(self.stdout, self.stderr)


@dataclass
class CliResult:
    """Result of a single arduino-cli call."""

    args: List[str]
    returncode: int
    stdout: str
    stderr: str
    duration: float
    truncated: bool = False

    @property
    def ok(self) -> bool:
        """Whether the process exited with status 0."""
        return self.returncode == 0

    @property
    def output(self) -> str:
        """stdout and stderr combined for display."""
        return _join_output(self.stdout, self.stderr)


class TailBuffer:
    """Keeps the last `limit` bytes written to it.

    Leading chunks are dropped as soon as the rest covers the limit, so at
    most `limit` bytes plus one read chunk are held at any time.
    """

    def __init__(self, limit: int):
        self.limit = max(int(limit), 0)
        self.total = 0
        self._chunks: Deque[bytes] = deque()
        self._size = 0
        self._lock = threading.Lock()

    @property
    def size(self) -> int:
        """Bytes currently held."""
        return self._size

    @property
    def truncated(self) -> bool:
        return self.total > self.limit

    def write(self, chunk: bytes) -> None:
        if not chunk:
            return
        with self._lock:
            self.total += len(chunk)
            self._chunks.append(chunk)
            self._size += len(chunk)
            while self._chunks and self._size - len(self._chunks[0]) >= self.limit:
                self._size -= len(self._chunks.popleft())

    def text(self) -> str:
        """Decoded tail, prefixed with a marker when bytes were dropped."""
        with self._lock:
            data = b"".join(self._chunks)
            total = self.total

        if total <= self.limit:
            return data.decode("utf-8", errors="replace")
        tail = data[len(data) - self.limit:]
        return TRUNCATION_MARKER.format(count=total - len(tail)) + tail.decode("utf-8", errors="replace")


def candidate_paths(system: Optional[str] = None) -> List[Path]:
    """Get the OS-specific locations probed for arduino-cli.

    Args:
        system: platform.system() value (defaults to the host)

    Returns:
        Ordered list of candidate executable paths
    """
    system = (system or platform.system()).lower()
    home = Path.home()

    if system == "windows":
        return [
            Path("C:/Program Files/Arduino CLI/arduino-cli.exe"),
            Path("C:/arduino-cli/arduino-cli.exe"),
            home / "AppData" / "Local" / "Arduino15" / "arduino-cli.exe",
        ]

    return [
        Path("/usr/local/bin/arduino-cli"),
        Path("/usr/bin/arduino-cli"),
        Path("/opt/arduino-cli/arduino-cli"),
        home / "bin" / "arduino-cli",
        home / ".local" / "bin" / "arduino-cli",
    ]


def resolve_executable(explicit: Optional[Path] = None, system: Optional[str] = None) -> Optional[Path]:
    """Locate the arduino-cli executable.

    Args:
        explicit: Path from settings or the environment; used as-is when set
        system: platform.system() value (defaults to the host)

    Returns:
        Path to the executable, or None if nothing was found
    """
    if explicit is not None:
        return Path(explicit)

    for candidate in candidate_paths(system):
        if candidate.is_file():
            return candidate

    found = shutil.which(EXECUTABLE_NAME)
    return Path(found) if found else None


class ArduinoCli:
    """Runs arduino-cli commands."""

    def __init__(self, settings: Optional[ToolchainSettings] = None):
        """Initialize the invoker and resolve the executable.

        Args:
            settings: Toolchain settings (defaults to ToolchainSettings.from_env())
        """
        self.settings = settings or ToolchainSettings.from_env()
        self.executable = resolve_executable(self.settings.cli_path)
        if self.executable is None:
            logging.warning("arduino-cli not found; set ARDUINO_CLI_PATH or add it to PATH")
        else:
            logging.info(f"Using arduino-cli at {self.executable}")

    def build_command(self, args: Sequence[str]) -> List[str]:
        """Build the full command line for an arduino-cli call.

        Raises:
            ToolchainNotFoundError: If no executable was resolved
        """
        if self.executable is None:
            raise ToolchainNotFoundError(
                "arduino-cli executable not found. Install it or set ARDUINO_CLI_PATH."
            )

        cmd = [str(self.executable)]
        cmd.extend(args)
        if self.settings.config_file is not None:
            cmd.extend(["--config-file", str(self.settings.config_file)])
        return cmd

    def run(self, args: Sequence[str], timeout: float, max_output_bytes: int) -> CliResult:
        """Run an arduino-cli command.

        stdout and stderr are drained by reader threads into tail buffers, so
        memory stays bounded by max_output_bytes however much the process
        writes.

        Args:
            args: Arguments after the executable (e.g., ["core", "list"])
            timeout: Seconds before the process tree is killed
            max_output_bytes: Ceiling for each of stdout and stderr

        Returns:
            CliResult; a non-zero exit status is not an exception

        Raises:
            ToolchainNotFoundError: If arduino-cli is not available
            ToolchainTimeoutError: If the timeout elapses
        """
        cmd = self.build_command(args)
        logging.debug(f"Running: {' '.join(cmd)}")

        start_time = time.time()
        try:
            process = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                stdin=subprocess.DEVNULL,
            )
        except FileNotFoundError as e:
            raise ToolchainNotFoundError(f"arduino-cli could not be started: {e}") from e

        stdout_buffer = TailBuffer(max_output_bytes)
        stderr_buffer = TailBuffer(max_output_bytes)
        readers = [
            _start_reader(process.stdout, stdout_buffer),
            _start_reader(process.stderr, stderr_buffer),
        ]

        try:
            process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            kill_process_tree(process.pid)
            process.wait()
            _join_readers(readers)
            logging.error(f"arduino-cli {' '.join(args[:2])} timed out after {timeout:g}s")
            raise ToolchainTimeoutError(
                list(args),
                timeout,
                stdout=stdout_buffer.text(),
                stderr=stderr_buffer.text(),
            )

        _join_readers(readers)
        duration = time.time() - start_time

        return CliResult(
            args=list(args),
            returncode=process.returncode,
            stdout=stdout_buffer.text(),
            stderr=stderr_buffer.text(),
            duration=duration,
            truncated=stdout_buffer.truncated or stderr_buffer.truncated,
        )

    def version(self) -> CliResult:
        """Run `arduino-cli version` with the listing budget."""
        return self.run(
            ["version"],
            timeout=self.settings.timeouts.listing,
            max_output_bytes=self.settings.output_limits.listing,
        )


def kill_process_tree(pid: int) -> int:
    """Terminate a process and all of its children.

    Children are terminated first; anything still alive after a short grace
    period is killed.

    Args:
        pid: Root process ID

    Returns:
        Number of processes signalled
    """
    try:
        root = psutil.Process(pid)
    except psutil.NoSuchProcess:
        return 0

    try:
        children = root.children(recursive=True)
    except psutil.NoSuchProcess:
        children = []

    processes = list(reversed(children)) + [root]
    signalled = 0
    for proc in processes:
        try:
            proc.terminate()
            signalled += 1
        except psutil.NoSuchProcess:
            pass

    _gone, alive = psutil.wait_procs(processes, timeout=3)
    for proc in alive:
        try:
            proc.kill()
            logging.warning(f"Force killed stubborn process {proc.pid}")
        except psutil.NoSuchProcess:
            pass

    return signalled


def _start_reader(pipe: BinaryIO, buffer: TailBuffer) -> threading.Thread:
    thread = threading.Thread(target=_drain, args=(pipe, buffer), daemon=True)
    thread.start()
    return thread


def _drain(pipe: BinaryIO, buffer: TailBuffer) -> None:
    with pipe:
        for chunk in iter(lambda: pipe.read1(READ_CHUNK_SIZE), b""):
            buffer.write(chunk)


def _join_readers(readers: List[threading.Thread]) -> None:
    # A surviving grandchild can hold a pipe open; don't wait on it forever
    for reader in readers:
        reader.join(timeout=READER_JOIN_TIMEOUT)


def _join_output(stdout: str, stderr: str) -> str:
    return "\n".join(part.rstrip("\n") for part in (stdout, stderr) if part)
