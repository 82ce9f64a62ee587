"""Unit tests for the Intel HEX codec."""

import pytest

from sketchbuild.build.intel_hex import IntelHexError, decode_intel_hex, encode_intel_hex, record_checksum

BLINK_HEX = """\
:100000000C945C000C946E000C946E000C946E00CA
:0300100002337A3E
:00000001FF
"""


class TestDecodeIntelHex:
    """Test cases for decode_intel_hex."""

    def test_data_records_in_order(self):
        data = decode_intel_hex(BLINK_HEX)
        assert data == bytes.fromhex("0C945C000C946E000C946E000C946E00") + bytes([0x02, 0x33, 0x7A])

    def test_single_record(self):
        assert decode_intel_hex(":0300300002337A1E") == bytes([0x02, 0x33, 0x7A])

    def test_eof_record_contributes_nothing(self):
        assert decode_intel_hex(":0300300002337A1E\n:00000001FF\n") == bytes([0x02, 0x33, 0x7A])

    def test_accepts_iterable_of_lines(self):
        assert decode_intel_hex(BLINK_HEX.splitlines()) == decode_intel_hex(BLINK_HEX)

    def test_non_data_records_are_skipped(self):
        text = ":020000040000FA\n:0100000041BE\n:0400000500000000F7\n:00000001FF\n"
        assert decode_intel_hex(text) == b"A"

    def test_lines_without_colon_are_ignored(self):
        text = "garbage\n\n  :0100000041BE  \r\n"
        assert decode_intel_hex(text) == b"A"

    def test_empty_input(self):
        assert decode_intel_hex("") == b""

    def test_short_data_record_raises(self):
        with pytest.raises(IntelHexError):
            decode_intel_hex(":0400000001")

    def test_invalid_hex_raises(self):
        with pytest.raises(IntelHexError):
            decode_intel_hex(":02000000ZZZZ00")

    def test_invalid_header_raises(self):
        with pytest.raises(IntelHexError):
            decode_intel_hex(":XX")


class TestEncodeIntelHex:
    """Test cases for encode_intel_hex."""

    def test_known_record(self):
        text = encode_intel_hex(bytes([0x02, 0x33, 0x7A]), start_address=0x0030)
        assert text.splitlines() == [":0300300002337A1E", ":00000001FF"]

    def test_splits_into_records(self):
        lines = encode_intel_hex(bytes(40)).splitlines()
        assert [line[1:3] for line in lines] == ["10", "10", "08", "00"]
        assert lines[1][3:7] == "0010"

    def test_decode_recovers_payload(self):
        payload = bytes(range(256)) * 3
        assert decode_intel_hex(encode_intel_hex(payload, record_size=32)) == payload

    def test_empty_data_is_eof_only(self):
        assert encode_intel_hex(b"") == ":00000001FF\n"

    def test_invalid_record_size(self):
        with pytest.raises(ValueError):
            encode_intel_hex(b"abc", record_size=0)

    def test_data_beyond_64k(self):
        with pytest.raises(ValueError):
            encode_intel_hex(bytes(0x10001))

    def test_checksum(self):
        assert record_checksum(bytes([0x03, 0x00, 0x30, 0x00, 0x02, 0x33, 0x7A])) == 0x1E
