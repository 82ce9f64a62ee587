"""Upload failure classification.

avrdude reports a bootloader handshake mismatch (the board was flashed with a
different bootloader generation than the FQBN assumes, e.g. an old-bootloader
Nano uploaded at 115200 baud) with a small set of stable messages. Only those
are worth retrying with the next variant candidate; everything else (busy or
missing port, permissions, esptool connection failures) is fatal.

Bootloader-mismatch signatures (case-insensitive substrings):
    stk500_getsync()                      - STK500v1 sync failure (Uno/Nano)
    not in sync: resp=                    - STK500v1 sync response mismatch
    stk500_recv(): programmer is not responding
    stk500v2_getsync(): timeout communicating with programmer  (Mega)
    stk500v2_receivemessage(): timeout
    butterfly_recv(): programmer is not responding             (Caterina)
    urclock_getsync()                     - urboot/urclock handshake (MiniCore)

Port signatures (case-insensitive substrings):
    can't open device, could not open port, no such file or directory,
    access is denied, permission denied, resource busy, device or resource busy
"""

from enum import Enum

BOOTLOADER_MISMATCH_SIGNATURES = (
    "stk500_getsync()",
    "not in sync: resp=",
    "stk500_recv(): programmer is not responding",
    "stk500v2_getsync(): timeout communicating with programmer",
    "stk500v2_receivemessage(): timeout",
    "butterfly_recv(): programmer is not responding",
    "urclock_getsync()",
)

PORT_UNAVAILABLE_SIGNATURES = (
    "can't open device",
    "could not open port",
    "no such file or directory",
    "access is denied",
    "permission denied",
    "resource busy",
)


class UploadFailureKind(Enum):
    """Classification of a failed upload."""

    BOOTLOADER_MISMATCH = "bootloader_mismatch"
    PORT_UNAVAILABLE = "port_unavailable"
    OTHER = "other"

    @property
    def retryable(self) -> bool:
        """Whether the next variant candidate may succeed."""
        return self is UploadFailureKind.BOOTLOADER_MISMATCH


def classify_upload_failure(diagnostics: str) -> UploadFailureKind:
    """Classify an upload failure from its diagnostic text.

    A port signature takes precedence over a sync signature in the same
    output.

    Args:
        diagnostics: Combined stdout/stderr of the failed upload

    Returns:
        UploadFailureKind
    """
    text = (diagnostics or "").lower()

    if any(signature in text for signature in PORT_UNAVAILABLE_SIGNATURES):
        return UploadFailureKind.PORT_UNAVAILABLE
    if any(signature in text for signature in BOOTLOADER_MISMATCH_SIGNATURES):
        return UploadFailureKind.BOOTLOADER_MISMATCH
    return UploadFailureKind.OTHER
