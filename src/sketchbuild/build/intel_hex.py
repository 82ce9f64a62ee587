"""Intel HEX record codec.

Record grammar (one record per line):

    :CCAAAATTDD...DDKK
     |  |   | |      +- checksum (2 hex digits)
     |  |   | +-------- data, CC bytes (2*CC hex digits)
     |  |   +---------- record type (00 = data, 01 = end of file, ...)
     |  +-------------- 16-bit load address
     +----------------- byte count

Decoding keeps only data-record payloads, concatenated in file order.
Addresses and checksums are not interpreted; lines without the leading colon
are ignored.
"""

from typing import Iterable, List, Union

RECORD_MARKER = ":"
RECORD_DATA = 0x00
RECORD_EOF = 0x01

# Offsets into a record line, marker included
_COUNT = slice(1, 3)
_TYPE = slice(7, 9)
_DATA_START = 9


class IntelHexError(Exception):
    """Raised for malformed Intel HEX data records."""

    pass


def decode_intel_hex(source: Union[str, Iterable[str]]) -> bytes:
    """Extract the payload of all data records.

    Args:
        source: Whole HEX text, or an iterable of lines

    Returns:
        Concatenated data-record bytes in encounter order

    Raises:
        IntelHexError: If a data record is truncated or not hexadecimal
    """
    lines = source.splitlines() if isinstance(source, str) else source

    payload = bytearray()
    for line_number, raw_line in enumerate(lines, start=1):
        line = raw_line.strip()
        if not line.startswith(RECORD_MARKER):
            continue

        try:
            byte_count = int(line[_COUNT], 16)
            record_type = int(line[_TYPE], 16)
        except ValueError:
            raise IntelHexError(f"Malformed record header on line {line_number}: {line!r}")

        if record_type != RECORD_DATA:
            continue

        data_end = _DATA_START + byte_count * 2
        if len(line) < data_end:
            raise IntelHexError(
                f"Data record on line {line_number} is shorter than its byte count ({byte_count})"
            )

        try:
            payload.extend(bytes.fromhex(line[_DATA_START:data_end]))
        except ValueError:
            raise IntelHexError(f"Invalid hex digits on line {line_number}: {line!r}")

    return bytes(payload)


def encode_intel_hex(data: bytes, record_size: int = 16, start_address: int = 0) -> str:
    """Encode bytes as Intel HEX data records followed by an EOF record.

    Only 16-bit addressing is produced, so data must fit below 64 KiB.

    Args:
        data: Bytes to encode
        record_size: Maximum data bytes per record (1-255)
        start_address: Load address of the first byte

    Returns:
        HEX text with a trailing newline

    Raises:
        ValueError: If record_size is out of range or data exceeds 64 KiB
    """
    if not 1 <= record_size <= 0xFF:
        raise ValueError(f"record_size must be between 1 and 255, got {record_size}")
    if start_address + len(data) > 0x10000:
        raise ValueError("Data does not fit in 16-bit address space")

    records: List[str] = []
    for offset in range(0, len(data), record_size):
        chunk = data[offset:offset + record_size]
        records.append(_format_record(start_address + offset, RECORD_DATA, chunk))
    records.append(_format_record(0, RECORD_EOF, b""))

    return "\n".join(records) + "\n"


def record_checksum(record: bytes) -> int:
    """Two's-complement checksum of the record bytes before the checksum field."""
    return (-sum(record)) & 0xFF


def _format_record(address: int, record_type: int, data: bytes) -> str:
    body = bytes([len(data), (address >> 8) & 0xFF, address & 0xFF, record_type]) + bytes(data)
    return f"{RECORD_MARKER}{body.hex().upper()}{record_checksum(body):02X}"
