"""Little-endian integer and length-prefixed vector encoding helpers.

This module provides the primitive serialization used by the filter envelope
and the binary descriptor form. All multi-byte integers are encoded in
little-endian byte order, which keeps the filter structures layout-compatible
with bincode's fixed-int encoding.

Conventions
- "write_*" functions return encoded bytes for the given value.
- "read_*" functions take a buffer and an offset, and return a tuple of
  (decoded_value, new_offset). They raise DecodeError if the buffer
  does not contain enough data starting at the given offset.
- Vector helpers implement opaque vectors with 1-, 2-, 4- or 8-byte
  length prefixes (opaque8/16/32/64).
"""

from __future__ import annotations

import struct
from typing import Optional, Sequence

from ..exceptions import DecodeError

_U32_ARRAY_MAX = 0xFFFFFFFF


def _require_length(buf: bytes, offset: int, need: int) -> None:
    """Ensure that 'buf' holds at least 'need' bytes starting at 'offset'.

    Raises
    - DecodeError: If the buffer is too short.
    """
    have = len(buf) - offset
    if have < need:
        raise DecodeError(f"buffer too short: need {need}, have {max(have, 0)}")


def _check_range(x: int, bits: int) -> None:
    if x < 0 or x >> bits:
        raise ValueError(f"value {x} does not fit in uint{bits}")


def write_uint8(x: int) -> bytes:
    """Encode an unsigned 8-bit integer."""
    _check_range(x, 8)
    return bytes((x,))


def write_uint16(x: int) -> bytes:
    """Encode an unsigned 16-bit integer in little-endian format."""
    _check_range(x, 16)
    return struct.pack("<H", x)


def write_uint32(x: int) -> bytes:
    """Encode an unsigned 32-bit integer in little-endian format."""
    _check_range(x, 32)
    return struct.pack("<I", x)


def write_uint64(x: int) -> bytes:
    """Encode an unsigned 64-bit integer in little-endian format."""
    _check_range(x, 64)
    return struct.pack("<Q", x)


def read_uint8(buf: bytes, offset: int = 0) -> tuple[int, int]:
    _require_length(buf, offset, 1)
    return buf[offset], offset + 1


def read_uint16(buf: bytes, offset: int = 0) -> tuple[int, int]:
    _require_length(buf, offset, 2)
    return struct.unpack_from("<H", buf, offset)[0], offset + 2


def read_uint32(buf: bytes, offset: int = 0) -> tuple[int, int]:
    _require_length(buf, offset, 4)
    return struct.unpack_from("<I", buf, offset)[0], offset + 4


def read_uint64(buf: bytes, offset: int = 0) -> tuple[int, int]:
    _require_length(buf, offset, 8)
    return struct.unpack_from("<Q", buf, offset)[0], offset + 8


_LENGTH_WRITERS = {1: write_uint8, 2: write_uint16, 4: write_uint32, 8: write_uint64}
_LENGTH_READERS = {1: read_uint8, 2: read_uint16, 4: read_uint32, 8: read_uint64}


def write_vector(data: bytes, length_bytes: int) -> bytes:
    """Encode 'data' prefixed with its length as a 1-, 2-, 4- or 8-byte integer.

    Raises
    - ValueError: If the prefix width is unsupported or 'data' is too long for it.
    """
    writer = _LENGTH_WRITERS.get(length_bytes)
    if writer is None:
        raise ValueError("length_bytes must be 1, 2, 4 or 8")
    try:
        prefix = writer(len(data))
    except ValueError:
        raise ValueError(f"vector too long for {length_bytes}-byte length") from None
    return prefix + bytes(data)


def read_vector(buf: bytes, offset: int, length_bytes: int) -> tuple[bytes, int]:
    reader = _LENGTH_READERS.get(length_bytes)
    if reader is None:
        raise ValueError("length_bytes must be 1, 2, 4 or 8")
    length, offset = reader(buf, offset)
    _require_length(buf, offset, length)
    return bytes(buf[offset:offset + length]), offset + length


def write_opaque8(data: bytes) -> bytes:
    return write_vector(data, 1)


def write_opaque16(data: bytes) -> bytes:
    return write_vector(data, 2)


def write_opaque32(data: bytes) -> bytes:
    return write_vector(data, 4)


def read_opaque8(buf: bytes, offset: int = 0) -> tuple[bytes, int]:
    return read_vector(buf, offset, 1)


def read_opaque16(buf: bytes, offset: int = 0) -> tuple[bytes, int]:
    return read_vector(buf, offset, 2)


def read_opaque32(buf: bytes, offset: int = 0) -> tuple[bytes, int]:
    return read_vector(buf, offset, 4)


def write_uint32_array(values: Sequence[int]) -> bytes:
    """Encode a u64 element count followed by each value as a little-endian u32.

    This is the bincode layout of a boxed ``[u32]`` slice.
    """
    for v in values:
        if v < 0 or v > _U32_ARRAY_MAX:
            raise ValueError(f"value {v} does not fit in uint32")
    return write_uint64(len(values)) + struct.pack(f"<{len(values)}I", *values)


def read_uint32_array(buf: bytes, offset: int = 0) -> tuple[list[int], int]:
    count, offset = read_uint64(buf, offset)
    # Guard before allocating so a corrupt count cannot request gigabytes.
    _require_length(buf, offset, count * 4)
    values = list(struct.unpack_from(f"<{count}I", buf, offset))
    return values, offset + count * 4


def write_optional_string(value: Optional[str]) -> bytes:
    """Encode an optional UTF-8 string as a presence byte plus opaque16 body."""
    if value is None:
        return write_uint8(0)
    return write_uint8(1) + write_opaque16(value.encode("utf-8"))


def read_optional_string(buf: bytes, offset: int = 0) -> tuple[Optional[str], int]:
    present, offset = read_uint8(buf, offset)
    if present == 0:
        return None, offset
    if present != 1:
        raise DecodeError(f"invalid option tag {present}")
    raw, offset = read_opaque16(buf, offset)
    try:
        return raw.decode("utf-8"), offset
    except UnicodeDecodeError as e:
        raise DecodeError("invalid UTF-8 in string field") from e


def require_consumed(buf: bytes, offset: int) -> None:
    """Raise DecodeError when bytes remain after a complete structure."""
    if offset != len(buf):
        raise DecodeError(f"{len(buf) - offset} trailing bytes after structure")
