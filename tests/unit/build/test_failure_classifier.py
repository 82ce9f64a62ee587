"""Unit tests for upload failure classification."""

from sketchbuild.build.failure_classifier import (
    UploadFailureKind,
    classify_upload_failure,
)


class TestClassifyUploadFailure:
    """Test cases for classify_upload_failure."""

    def test_stk500_sync_failure(self):
        output = (
            "avrdude: stk500_recv(): programmer is not responding\n"
            "avrdude: stk500_getsync() attempt 1 of 10: not in sync: resp=0x00\n"
        )
        assert classify_upload_failure(output) is UploadFailureKind.BOOTLOADER_MISMATCH

    def test_stk500v2_timeout(self):
        output = "avrdude: stk500v2_ReceiveMessage(): timeout\n"
        assert classify_upload_failure(output) is UploadFailureKind.BOOTLOADER_MISMATCH

    def test_case_insensitive(self):
        output = "AVRDUDE: STK500_GETSYNC() ATTEMPT 10 OF 10"
        assert classify_upload_failure(output) is UploadFailureKind.BOOTLOADER_MISMATCH

    def test_port_unavailable(self):
        output = "avrdude: ser_open(): can't open device \"/dev/ttyUSB0\": No such file or directory\n"
        assert classify_upload_failure(output) is UploadFailureKind.PORT_UNAVAILABLE

    def test_port_signature_wins(self):
        output = "can't open device \"COM3\": Access is denied.\nstk500_getsync() attempt 1 of 10\n"
        assert classify_upload_failure(output) is UploadFailureKind.PORT_UNAVAILABLE

    def test_other_failure(self):
        output = "A fatal error occurred: Failed to connect to ESP32-S3: No serial data received.\n"
        assert classify_upload_failure(output) is UploadFailureKind.OTHER

    def test_empty(self):
        assert classify_upload_failure("") is UploadFailureKind.OTHER
        assert classify_upload_failure(None) is UploadFailureKind.OTHER

    def test_only_mismatch_is_retryable(self):
        assert UploadFailureKind.BOOTLOADER_MISMATCH.retryable
        assert not UploadFailureKind.PORT_UNAVAILABLE.retryable
        assert not UploadFailureKind.OTHER.retryable
