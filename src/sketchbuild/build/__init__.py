"""
Build components for sketchbuild.

This module provides:
- Intel HEX decoding and encoding
- ESP32 firmware segment bundles
- Upload failure classification
- Per-call build workspaces
- Compile/upload orchestration with variant fallback
"""

from .failure_classifier import UploadFailureKind, classify_upload_failure
from .firmware_bundle import FirmwareBundle, FirmwareBundleError, assemble_firmware_bundle
from .intel_hex import IntelHexError, decode_intel_hex, encode_intel_hex
from .orchestrator import (
    AttemptOutcome,
    AttemptStatus,
    CompilationRequest,
    CompilationResult,
    CompileUploadOrchestrator,
    ErrorKind,
    OrchestratorInputError,
    UploadRequest,
)
from .workspace import BuildWorkspace

__all__ = [
    'UploadFailureKind',
    'classify_upload_failure',
    'FirmwareBundle',
    'FirmwareBundleError',
    'assemble_firmware_bundle',
    'IntelHexError',
    'decode_intel_hex',
    'encode_intel_hex',
    'AttemptOutcome',
    'AttemptStatus',
    'CompilationRequest',
    'CompilationResult',
    'CompileUploadOrchestrator',
    'ErrorKind',
    'OrchestratorInputError',
    'UploadRequest',
    'BuildWorkspace',
]
