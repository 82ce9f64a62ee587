"""
Compile/upload orchestration for sketchbuild.

This module turns a compile request into firmware, optionally flashing it:
1. Validate input (source present, board known, override compatible)
2. Ensure the core and detected libraries are installed
3. For each variant candidate, in order:
   a. Compile; a failure ends the call (source errors do not depend on the variant)
   b. Upload if a port was given; a bootloader-mismatch failure moves on to
      the next candidate, any other failure ends the call
   c. Stop at the first success
4. Extract the artifact (HEX bytes or ESP32 segment bundle) from the
   successful candidate's output directory

Every attempt produces an AttemptOutcome value; the loop inspects outcomes
instead of catching exceptions. Errors from collaborators are converted into
a CompilationResult at this boundary.

Example usage:
    orchestrator = CompileUploadOrchestrator()
    result = orchestrator.compile_and_maybe_upload(
        CompilationRequest(source_code=code, board_selector="arduino-nano", port="/dev/ttyUSB0")
    )
    if result.success:
        print(f"Uploaded with {result.chosen_variant}")
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from ..config.board_profiles import (
    ARTIFACT_BIN_BUNDLE,
    ARTIFACT_HEX,
    BoardProfile,
    BoardProfileError,
    VariantCandidate,
    get_board_profile,
)
from ..config.settings import ToolchainSettings
from ..packages.cli_invoker import ArduinoCli, CliResult, ToolchainNotFoundError, ToolchainTimeoutError
from ..packages.dependency_resolver import DependencyInstallError, DependencyReport, DependencyResolver
from .failure_classifier import UploadFailureKind, classify_upload_failure
from .firmware_bundle import FirmwareBundle, FirmwareBundleError, assemble_firmware_bundle
from .intel_hex import IntelHexError, decode_intel_hex
from .workspace import BuildWorkspace, is_valid_sketch_name


class ErrorKind(Enum):
    """Classification of a failed orchestration call."""

    INPUT_ERROR = "input_error"
    ENVIRONMENT_ERROR = "environment_error"
    DEPENDENCY_INSTALL_ERROR = "dependency_install_error"
    COMPILE_ERROR = "compile_error"
    UPLOAD_BOOTLOADER_MISMATCH = "upload_bootloader_mismatch"
    UPLOAD_ERROR = "upload_error"
    TIMEOUT = "timeout"


class OrchestratorInputError(Exception):
    """Raised when a request is rejected before any subprocess runs."""

    pass


class AttemptStatus(Enum):
    """What the candidate loop does after an attempt."""

    SUCCESS = "success"
    RETRYABLE = "retryable"
    FATAL = "fatal"


@dataclass
class CompilationRequest:
    """A request to compile (and optionally upload) a sketch."""

    source_code: str
    board_selector: str
    port: Optional[str] = None
    variant_override: Optional[str] = None
    sketch_name: str = "sketch"


@dataclass
class UploadRequest:
    """A request to upload a precompiled Intel HEX image."""

    hex_text: str
    board_selector: str
    port: str
    variant_override: Optional[str] = None


@dataclass
class AttemptOutcome:
    """Outcome of trying one variant candidate."""

    variant: str
    status: AttemptStatus
    stage: str
    error_kind: Optional[ErrorKind] = None
    message: str = ""
    diagnostics: str = ""

    def to_dict(self) -> Dict[str, object]:
        """Convert to dictionary for JSON serialization."""
        return {
            "variant": self.variant,
            "status": self.status.value,
            "stage": self.stage,
            "errorKind": self.error_kind.value if self.error_kind else None,
            "message": self.message,
        }


@dataclass
class CompilationResult:
    """Result of a compile/upload call."""

    success: bool
    chosen_variant: Optional[str] = None
    artifact: Optional[bytes] = None
    hex_text: Optional[str] = None
    firmware_bundle: Optional[FirmwareBundle] = None
    uploaded: bool = False
    diagnostics: str = ""
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None
    attempts: List[AttemptOutcome] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    build_time: float = 0.0
    retained_build_dir: Optional[Path] = None

    @classmethod
    def failure(cls, error_kind: ErrorKind, message: str, diagnostics: str = "") -> "CompilationResult":
        """Create a failed result."""
        return cls(
            success=False,
            error_kind=error_kind,
            error_message=message,
            diagnostics=diagnostics,
        )

    @property
    def size(self) -> Optional[int]:
        """Size of the decoded HEX artifact in bytes."""
        return len(self.artifact) if self.artifact is not None else None

    def to_dict(self) -> Dict[str, object]:
        """Convert to the JSON response shape."""
        data: Dict[str, object] = {
            "success": self.success,
            "chosenVariant": self.chosen_variant,
            "uploaded": self.uploaded,
            "diagnostics": self.diagnostics,
            "errorKind": self.error_kind.value if self.error_kind else None,
            "errorMessage": self.error_message,
            "warnings": list(self.warnings),
            "attempts": [attempt.to_dict() for attempt in self.attempts],
            "buildTime": round(self.build_time, 3),
        }
        if self.artifact is not None:
            data["artifact"] = list(self.artifact)
            data["hex"] = self.hex_text
            data["size"] = self.size
        if self.firmware_bundle is not None:
            data["firmwareBundle"] = self.firmware_bundle.to_dict()
        if self.retained_build_dir is not None:
            data["retainedBuildDir"] = str(self.retained_build_dir)
        return data


AttemptFn = Callable[[VariantCandidate], AttemptOutcome]


class CompileUploadOrchestrator:
    """Coordinates dependency resolution, compilation, upload and artifact extraction."""

    def __init__(
        self,
        cli: Optional[ArduinoCli] = None,
        resolver: Optional[DependencyResolver] = None,
        settings: Optional[ToolchainSettings] = None,
    ):
        """Initialize the orchestrator.

        Args:
            cli: arduino-cli invoker (created from settings if omitted)
            resolver: Dependency resolver to share across calls (created if omitted)
            settings: Toolchain settings (defaults to the invoker's, then the environment)
        """
        if settings is None:
            settings = cli.settings if cli is not None else ToolchainSettings.from_env()
        self.settings = settings
        self.cli = cli or ArduinoCli(settings)
        self.resolver = resolver or DependencyResolver(self.cli, settings)

    def ensure_dependencies(self, source_code: str, board_selector: str) -> DependencyReport:
        """Ensure the core and libraries for a sketch (see DependencyResolver)."""
        return self.resolver.ensure_dependencies(source_code, board_selector)

    def compile_and_maybe_upload(self, request: CompilationRequest) -> CompilationResult:
        """Compile a sketch and upload it when a port is given.

        Args:
            request: Compilation request

        Returns:
            CompilationResult; failures are reported in the result, not raised
        """
        start_time = time.time()

        try:
            if not request.source_code or not request.source_code.strip():
                raise OrchestratorInputError("No code provided")
            if not is_valid_sketch_name(request.sketch_name):
                raise OrchestratorInputError(f"Invalid sketch name: {request.sketch_name!r}")
            profile = get_board_profile(request.board_selector)
            candidates = profile.candidates_for(request.variant_override)
            port = (request.port or "").strip() or None
        except (OrchestratorInputError, BoardProfileError) as e:
            return self._finish(CompilationResult.failure(ErrorKind.INPUT_ERROR, str(e)), start_time)

        try:
            report = self.resolver.ensure_dependencies(request.source_code, request.board_selector)
        except DependencyInstallError as e:
            return self._finish(
                CompilationResult.failure(ErrorKind.DEPENDENCY_INSTALL_ERROR, str(e), e.diagnostics),
                start_time,
            )
        except ToolchainNotFoundError as e:
            return self._finish(CompilationResult.failure(ErrorKind.ENVIRONMENT_ERROR, str(e)), start_time)

        logging.info(
            f"Compiling sketch for {profile.selector} "
            f"({len(candidates)} candidate{'s' if len(candidates) != 1 else ''})"
        )

        with BuildWorkspace(self.settings, request.sketch_name) as workspace:
            workspace.write_sketch(request.source_code)

            def attempt(candidate: VariantCandidate) -> AttemptOutcome:
                return self._compile_attempt(profile, candidate, workspace, port)

            chosen, attempts = self._run_candidates(candidates, attempt)
            result = self._result_from_attempts(chosen, attempts)
            result.warnings = report.warnings

            if chosen is not None:
                result.uploaded = port is not None
                self._extract_artifact(result, profile, workspace.output_dir(chosen.fqbn), request.sketch_name)

            if not result.success and self.settings.keep_failed_builds:
                workspace.retain = True
                result.retained_build_dir = workspace.root

        return self._finish(result, start_time)

    def upload_firmware(self, request: UploadRequest) -> CompilationResult:
        """Upload a precompiled Intel HEX image with variant fallback.

        Args:
            request: Upload request

        Returns:
            CompilationResult with the decoded image as artifact
        """
        start_time = time.time()

        try:
            if not request.hex_text or not request.hex_text.strip():
                raise OrchestratorInputError("No firmware provided")
            port = (request.port or "").strip()
            if not port:
                raise OrchestratorInputError("No port provided")
            profile = get_board_profile(request.board_selector)
            if profile.artifact_format != ARTIFACT_HEX:
                raise OrchestratorInputError(
                    f"Board {profile.selector!r} does not take Intel HEX uploads"
                )
            candidates = profile.candidates_for(request.variant_override)
            artifact = decode_intel_hex(request.hex_text)
        except (OrchestratorInputError, BoardProfileError, IntelHexError) as e:
            return self._finish(CompilationResult.failure(ErrorKind.INPUT_ERROR, str(e)), start_time)

        try:
            self.resolver.ensure_core(request.board_selector)
        except DependencyInstallError as e:
            return self._finish(
                CompilationResult.failure(ErrorKind.DEPENDENCY_INSTALL_ERROR, str(e), e.diagnostics),
                start_time,
            )
        except ToolchainNotFoundError as e:
            return self._finish(CompilationResult.failure(ErrorKind.ENVIRONMENT_ERROR, str(e)), start_time)

        with BuildWorkspace(self.settings) as workspace:
            firmware_path = workspace.write_firmware(request.hex_text)

            def attempt(candidate: VariantCandidate) -> AttemptOutcome:
                args = ["upload", "-p", port, "--fqbn", candidate.fqbn, "--input-file", str(firmware_path)]
                return self._upload_attempt(candidate, args, diagnostics_so_far="")

            chosen, attempts = self._run_candidates(candidates, attempt)
            result = self._result_from_attempts(chosen, attempts)

            if chosen is not None:
                result.uploaded = True
                result.artifact = artifact
                result.hex_text = request.hex_text

            if not result.success and self.settings.keep_failed_builds:
                workspace.retain = True
                result.retained_build_dir = workspace.root

        return self._finish(result, start_time)

    # Candidate loop

    def _run_candidates(
        self, candidates: Sequence[VariantCandidate], attempt: AttemptFn
    ) -> Tuple[Optional[VariantCandidate], List[AttemptOutcome]]:
        """Try candidates in order until one succeeds or one fails fatally.

        Returns:
            Tuple of (successful candidate or None, outcomes in attempt order)
        """
        outcomes: List[AttemptOutcome] = []
        for index, candidate in enumerate(candidates):
            outcome = attempt(candidate)
            outcomes.append(outcome)

            if outcome.status is AttemptStatus.SUCCESS:
                logging.info(f"Variant {candidate.fqbn} succeeded")
                return candidate, outcomes
            if outcome.status is AttemptStatus.FATAL:
                logging.error(f"Variant {candidate.fqbn} failed at {outcome.stage}: {outcome.message}")
                break

            remaining = len(candidates) - index - 1
            logging.warning(
                f"Bootloader mismatch with {candidate.fqbn}"
                + (", trying next variant" if remaining else ", no variants left")
            )

        return None, outcomes

    def _compile_attempt(
        self,
        profile: BoardProfile,
        candidate: VariantCandidate,
        workspace: BuildWorkspace,
        port: Optional[str],
    ) -> AttemptOutcome:
        output_dir = workspace.output_dir(candidate.fqbn)
        args = ["compile", "--fqbn", candidate.fqbn]
        for build_property in candidate.build_properties:
            args.extend(["--build-property", build_property])
        args.extend(["--output-dir", str(output_dir), str(workspace.sketch_dir)])

        timeouts = self.settings.timeouts
        timeout = timeouts.large_compile if profile.large_target else timeouts.compile

        result, failed = self._invoke(candidate, "compile", args, timeout)
        if failed is not None:
            return failed
        if not result.ok:
            return AttemptOutcome(
                variant=candidate.fqbn,
                status=AttemptStatus.FATAL,
                stage="compile",
                error_kind=ErrorKind.COMPILE_ERROR,
                message="Compilation failed",
                diagnostics=result.output,
            )

        if not port:
            return AttemptOutcome(
                variant=candidate.fqbn,
                status=AttemptStatus.SUCCESS,
                stage="compile",
                diagnostics=result.output,
            )

        upload_args = ["upload", "-p", port, "--fqbn", candidate.fqbn, "--input-dir", str(output_dir)]
        return self._upload_attempt(candidate, upload_args, diagnostics_so_far=result.output)

    def _upload_attempt(
        self, candidate: VariantCandidate, args: List[str], diagnostics_so_far: str
    ) -> AttemptOutcome:
        result, failed = self._invoke(candidate, "upload", args, self.settings.timeouts.upload)
        if failed is not None:
            failed.diagnostics = _join(diagnostics_so_far, failed.diagnostics)
            return failed

        diagnostics = _join(diagnostics_so_far, result.output)
        if result.ok:
            return AttemptOutcome(
                variant=candidate.fqbn,
                status=AttemptStatus.SUCCESS,
                stage="upload",
                diagnostics=diagnostics,
            )

        kind = classify_upload_failure(result.output)
        if kind.retryable:
            return AttemptOutcome(
                variant=candidate.fqbn,
                status=AttemptStatus.RETRYABLE,
                stage="upload",
                error_kind=ErrorKind.UPLOAD_BOOTLOADER_MISMATCH,
                message="Upload failed: bootloader did not respond (wrong board variant?)",
                diagnostics=diagnostics,
            )

        message = "Upload failed: serial port unavailable" if kind is UploadFailureKind.PORT_UNAVAILABLE else "Upload failed"
        return AttemptOutcome(
            variant=candidate.fqbn,
            status=AttemptStatus.FATAL,
            stage="upload",
            error_kind=ErrorKind.UPLOAD_ERROR,
            message=message,
            diagnostics=diagnostics,
        )

    def _invoke(
        self, candidate: VariantCandidate, stage: str, args: List[str], timeout: float
    ) -> Tuple[Optional[CliResult], Optional[AttemptOutcome]]:
        """Run one arduino-cli step, turning invoker errors into fatal outcomes."""
        logging.info(f"{stage.capitalize()} {candidate.fqbn}")
        try:
            result = self.cli.run(args, timeout=timeout, max_output_bytes=self.settings.output_limits.compile)
        except ToolchainTimeoutError as e:
            return None, AttemptOutcome(
                variant=candidate.fqbn,
                status=AttemptStatus.FATAL,
                stage=stage,
                error_kind=ErrorKind.TIMEOUT,
                message=str(e),
                diagnostics=e.output,
            )
        except ToolchainNotFoundError as e:
            return None, AttemptOutcome(
                variant=candidate.fqbn,
                status=AttemptStatus.FATAL,
                stage=stage,
                error_kind=ErrorKind.ENVIRONMENT_ERROR,
                message=str(e),
            )
        return result, None

    # Results

    @staticmethod
    def _result_from_attempts(
        chosen: Optional[VariantCandidate], attempts: List[AttemptOutcome]
    ) -> CompilationResult:
        diagnostics = "\n".join(
            f"== {attempt.stage} {attempt.variant} ==\n{attempt.diagnostics}".rstrip()
            for attempt in attempts
        )

        if chosen is not None:
            return CompilationResult(
                success=True,
                chosen_variant=chosen.fqbn,
                diagnostics=diagnostics,
                attempts=attempts,
            )

        last = attempts[-1]
        return CompilationResult(
            success=False,
            diagnostics=diagnostics,
            error_kind=last.error_kind,
            error_message=last.message,
            attempts=attempts,
        )

    @staticmethod
    def _extract_artifact(
        result: CompilationResult, profile: BoardProfile, output_dir: Path, sketch_name: str
    ) -> None:
        """Attach the firmware image to a successful result (or mark it failed)."""
        try:
            if profile.artifact_format == ARTIFACT_BIN_BUNDLE:
                result.firmware_bundle = assemble_firmware_bundle(output_dir, sketch_name, profile.chip)
                return

            hex_path = output_dir / f"{sketch_name}.ino.hex"
            if not hex_path.is_file():
                raise FirmwareBundleError(f"HEX file not generated: {hex_path}")
            result.hex_text = hex_path.read_text(encoding="utf-8")
            result.artifact = decode_intel_hex(result.hex_text)
        except (FirmwareBundleError, IntelHexError) as e:
            result.success = False
            result.error_kind = ErrorKind.COMPILE_ERROR
            result.error_message = str(e)

    @staticmethod
    def _finish(result: CompilationResult, start_time: float) -> CompilationResult:
        result.build_time = time.time() - start_time
        if result.success:
            logging.info(f"Done with {result.chosen_variant} in {result.build_time:.2f}s")
        else:
            logging.error(f"Failed ({result.error_kind.value if result.error_kind else 'unknown'}): {result.error_message}")
        return result


def _join(*parts: str) -> str:
    return "\n".join(part.rstrip("\n") for part in parts if part)
