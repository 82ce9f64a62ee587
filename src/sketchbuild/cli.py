"""
Command-line interface for sketchbuild.

This module provides the `sketchbuild` CLI tool for compiling and uploading
Arduino sketches through arduino-cli.
"""

import argparse
import json
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from sketchbuild import __version__
from sketchbuild.build import (
    CompilationRequest,
    CompilationResult,
    CompileUploadOrchestrator,
    UploadRequest,
)
from sketchbuild.cli_utils import ErrorFormatter, SketchLoader, setup_logging
from sketchbuild.config import BOARD_PROFILES, BoardProfileError, ToolchainSettings
from sketchbuild.packages import (
    ArduinoCli,
    DependencyInstallError,
    DependencyResolver,
    ToolchainError,
)
from sketchbuild.packages.dependency_resolver import parse_installed_cores


@dataclass
class CompileArgs:
    """Arguments for the compile command."""

    sketch: Path
    board: str
    port: Optional[str] = None
    variant: Optional[str] = None
    output: Optional[Path] = None
    json_output: bool = False
    verbose: bool = False


@dataclass
class UploadArgs:
    """Arguments for the upload command."""

    firmware: Path
    board: str
    port: str
    variant: Optional[str] = None
    json_output: bool = False
    verbose: bool = False


@dataclass
class DepsArgs:
    """Arguments for the deps command."""

    sketch: Path
    board: str
    verbose: bool = False


def compile_command(args: CompileArgs) -> None:
    """Compile a sketch, uploading it when a port is given.

    Examples:
        sketchbuild compile Blink.ino -b arduino-uno
        sketchbuild compile Blink/ -b arduino-nano -p /dev/ttyUSB0
        sketchbuild compile Blink.ino -b esp32 -o firmware.json
        sketchbuild compile Blink.ino -b arduino-nano --variant arduino:avr:nano:cpu=atmega328old
    """
    try:
        sketch = SketchLoader.load(args.sketch)
        orchestrator = CompileUploadOrchestrator()

        if not args.json_output:
            action = f"Compiling and uploading to {args.port}" if args.port else "Compiling"
            print(f"{action}: {sketch.path} ({args.board})...")

        result = orchestrator.compile_and_maybe_upload(
            CompilationRequest(
                source_code=sketch.source,
                board_selector=args.board,
                port=args.port,
                variant_override=args.variant,
                sketch_name=sketch.name,
            )
        )

        if result.success and args.output is not None:
            _write_artifact(result, args.output)

        _report(result, args.json_output, args.verbose)

    except FileNotFoundError as e:
        ErrorFormatter.handle_file_not_found(e)
    except KeyboardInterrupt:
        ErrorFormatter.handle_keyboard_interrupt()
    except Exception as e:
        ErrorFormatter.handle_unexpected_error(e, args.verbose)


def upload_command(args: UploadArgs) -> None:
    """Upload a precompiled Intel HEX file.

    Examples:
        sketchbuild upload firmware.hex -b arduino-nano -p /dev/ttyUSB0
    """
    try:
        hex_text = args.firmware.read_text(encoding="utf-8", errors="replace")
        orchestrator = CompileUploadOrchestrator()

        if not args.json_output:
            print(f"Uploading {args.firmware} to {args.port} ({args.board})...")

        result = orchestrator.upload_firmware(
            UploadRequest(
                hex_text=hex_text,
                board_selector=args.board,
                port=args.port,
                variant_override=args.variant,
            )
        )
        _report(result, args.json_output, args.verbose)

    except FileNotFoundError as e:
        ErrorFormatter.handle_file_not_found(e)
    except KeyboardInterrupt:
        ErrorFormatter.handle_keyboard_interrupt()
    except Exception as e:
        ErrorFormatter.handle_unexpected_error(e, args.verbose)


def deps_command(args: DepsArgs) -> None:
    """Install the core and libraries a sketch needs, without compiling."""
    try:
        sketch = SketchLoader.load(args.sketch)
        with DependencyResolver(ArduinoCli()) as resolver:
            report = resolver.ensure_dependencies(sketch.source, args.board)

        ErrorFormatter.print_success(f"Core ready: {report.core.spec}")
        for library in report.libraries:
            status = "installed" if library.installed else "missing"
            print(f"  {library.name}: {status}")
        for warning in report.warnings:
            ErrorFormatter.print_warning(warning)
        sys.exit(0)

    except BoardProfileError as e:
        ErrorFormatter.print_error("Invalid board", str(e))
        sys.exit(1)
    except DependencyInstallError as e:
        ErrorFormatter.print_error("Dependency installation failed", f"{e}\n{e.diagnostics}".strip())
        sys.exit(1)
    except ToolchainError as e:
        ErrorFormatter.print_error("Toolchain error", str(e))
        sys.exit(1)
    except FileNotFoundError as e:
        ErrorFormatter.handle_file_not_found(e)
    except KeyboardInterrupt:
        ErrorFormatter.handle_keyboard_interrupt()
    except Exception as e:
        ErrorFormatter.handle_unexpected_error(e, args.verbose)


def boards_command() -> None:
    """List board selectors and their variant candidates."""
    for selector, profile in sorted(BOARD_PROFILES.items()):
        aliases = f" (aliases: {', '.join(profile.aliases)})" if profile.aliases else ""
        print(f"{selector}: {profile.name}{aliases}")
        print(f"  core: {profile.core.spec}")
        for candidate in profile.candidates:
            print(f"  - {candidate.fqbn}")
    sys.exit(0)


def doctor_command(verbose: bool = False) -> None:
    """Check that arduino-cli is reachable and list installed cores."""
    try:
        settings = ToolchainSettings.from_env()
        cli = ArduinoCli(settings)
        if cli.executable is None:
            ErrorFormatter.print_error(
                "arduino-cli not found",
                "Install arduino-cli or set ARDUINO_CLI_PATH to its location.",
            )
            sys.exit(1)

        version = cli.version()
        if not version.ok:
            ErrorFormatter.print_error("arduino-cli failed to report its version", version.output)
            sys.exit(1)
        print(f"arduino-cli: {cli.executable}")
        print(f"  {version.stdout.strip()}")

        cores = cli.run(
            ["core", "list", "--format", "json"],
            timeout=settings.timeouts.listing,
            max_output_bytes=settings.output_limits.listing,
        )
        installed = parse_installed_cores(cores.stdout) if cores.ok else {}
        print("Installed cores:")
        if not installed:
            print("  (none)")
        for core_id, core_version in sorted(installed.items()):
            print(f"  {core_id} {core_version or ''}".rstrip())

        ErrorFormatter.print_success("Toolchain OK")
        sys.exit(0)

    except ToolchainError as e:
        ErrorFormatter.print_error("Toolchain error", str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        ErrorFormatter.handle_keyboard_interrupt()
    except Exception as e:
        ErrorFormatter.handle_unexpected_error(e, verbose)


def _write_artifact(result: CompilationResult, output: Path) -> None:
    output.parent.mkdir(parents=True, exist_ok=True)
    if result.firmware_bundle is not None:
        output.write_text(json.dumps(result.firmware_bundle.to_dict(), indent=2), encoding="utf-8")
    elif result.hex_text is not None:
        output.write_text(result.hex_text, encoding="utf-8")


def _report(result: CompilationResult, json_output: bool, verbose: bool) -> None:
    """Print a result and exit with its status."""
    if json_output:
        print(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.success else 1)

    for warning in result.warnings:
        ErrorFormatter.print_warning(warning)

    if not result.success:
        kind = result.error_kind.value if result.error_kind else "error"
        ErrorFormatter.print_error(f"{result.error_message} [{kind}]", result.diagnostics)
        if result.retained_build_dir is not None:
            print(f"Build directory kept at {result.retained_build_dir}")
        sys.exit(1)

    if verbose and result.diagnostics:
        print(result.diagnostics)

    action = "Upload" if result.uploaded else "Build"
    ErrorFormatter.print_success(f"{action} successful with {result.chosen_variant} ({result.build_time:.2f}s)")
    if result.size is not None:
        print(f"Firmware size: {result.size} bytes")
    if result.firmware_bundle is not None:
        for segment in ("bootloader", "partitions", "application"):
            data = result.firmware_bundle.segment_bytes(segment)
            print(f"  {segment}: {len(data)} bytes" if data is not None else f"  {segment}: not produced")
    sys.exit(0)


def main() -> None:
    """sketchbuild - compile and upload Arduino sketches."""
    parser = argparse.ArgumentParser(
        prog="sketchbuild",
        description="sketchbuild - compile and upload Arduino sketches with arduino-cli",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"sketchbuild {__version__}",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write logs to this file",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Compile command
    compile_parser = subparsers.add_parser(
        "compile",
        help="Compile a sketch (and upload it when --port is given)",
    )
    compile_parser.add_argument(
        "sketch",
        type=Path,
        help="Sketch file (.ino) or sketch folder",
    )
    compile_parser.add_argument(
        "-b",
        "--board",
        required=True,
        help="Board selector (see `sketchbuild boards`)",
    )
    compile_parser.add_argument(
        "-p",
        "--port",
        default=None,
        help="Serial port to upload to (default: compile only)",
    )
    compile_parser.add_argument(
        "--variant",
        default=None,
        help="Exact FQBN to use instead of trying the board's variants",
    )
    compile_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=None,
        help="Write the firmware here (HEX text, or JSON bundle for ESP32)",
    )
    compile_parser.add_argument(
        "--json",
        dest="json_output",
        action="store_true",
        help="Print the result as JSON",
    )
    compile_parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show verbose output",
    )

    # Upload command
    upload_parser = subparsers.add_parser(
        "upload",
        help="Upload a precompiled Intel HEX file",
    )
    upload_parser.add_argument(
        "firmware",
        type=Path,
        help="Intel HEX file",
    )
    upload_parser.add_argument(
        "-b",
        "--board",
        required=True,
        help="Board selector (see `sketchbuild boards`)",
    )
    upload_parser.add_argument(
        "-p",
        "--port",
        required=True,
        help="Serial port",
    )
    upload_parser.add_argument(
        "--variant",
        default=None,
        help="Exact FQBN to use instead of trying the board's variants",
    )
    upload_parser.add_argument(
        "--json",
        dest="json_output",
        action="store_true",
        help="Print the result as JSON",
    )
    upload_parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show verbose output",
    )

    # Deps command
    deps_parser = subparsers.add_parser(
        "deps",
        help="Install the core and libraries a sketch needs",
    )
    deps_parser.add_argument(
        "sketch",
        type=Path,
        help="Sketch file (.ino) or sketch folder",
    )
    deps_parser.add_argument(
        "-b",
        "--board",
        required=True,
        help="Board selector (see `sketchbuild boards`)",
    )
    deps_parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show verbose output",
    )

    subparsers.add_parser(
        "boards",
        help="List supported boards",
    )

    doctor_parser = subparsers.add_parser(
        "doctor",
        help="Check the arduino-cli installation",
    )
    doctor_parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show verbose output",
    )

    # Parse arguments
    parsed_args = parser.parse_args()

    # If no command specified, show help
    if not parsed_args.command:
        parser.print_help()
        sys.exit(0)

    setup_logging(getattr(parsed_args, "verbose", False), parsed_args.log_file)

    # Execute command
    if parsed_args.command == "compile":
        compile_command(
            CompileArgs(
                sketch=parsed_args.sketch,
                board=parsed_args.board,
                port=parsed_args.port,
                variant=parsed_args.variant,
                output=parsed_args.output,
                json_output=parsed_args.json_output,
                verbose=parsed_args.verbose,
            )
        )
    elif parsed_args.command == "upload":
        upload_command(
            UploadArgs(
                firmware=parsed_args.firmware,
                board=parsed_args.board,
                port=parsed_args.port,
                variant=parsed_args.variant,
                json_output=parsed_args.json_output,
                verbose=parsed_args.verbose,
            )
        )
    elif parsed_args.command == "deps":
        deps_command(
            DepsArgs(
                sketch=parsed_args.sketch,
                board=parsed_args.board,
                verbose=parsed_args.verbose,
            )
        )
    elif parsed_args.command == "boards":
        boards_command()
    elif parsed_args.command == "doctor":
        doctor_command(parsed_args.verbose)


if __name__ == "__main__":
    main()
