"""
Miscellaneous helpers shared by the CharmX parsers.

Logging helpers, fixed-width little-endian packers and the Bitcoin
variable-length integer ("varint") codec.
"""

import logging
import struct
from typing import Tuple


def class_logger(path: str, classname: str) -> logging.Logger:
    """Return a hierarchical logger for a class."""
    return logging.getLogger(path).getChild(classname)


struct_le_H = struct.Struct('<H')
struct_le_I = struct.Struct('<I')
struct_le_i = struct.Struct('<i')
struct_le_Q = struct.Struct('<Q')

pack_le_uint16 = struct_le_H.pack
pack_le_uint32 = struct_le_I.pack
pack_le_int32 = struct_le_i.pack
pack_le_uint64 = struct_le_Q.pack
unpack_le_uint16_from = struct_le_H.unpack_from
unpack_le_uint32_from = struct_le_I.unpack_from
unpack_le_int32_from = struct_le_i.unpack_from
unpack_le_uint64_from = struct_le_Q.unpack_from

MAX_VARINT = 0xFFFFFFFFFFFFFFFF


def pack_varint(n: int) -> bytes:
    """Encode *n* as a Bitcoin varint.

    < 0xfd        -> 1 byte
    <= 0xffff     -> 0xfd + uint16
    <= 0xffffffff -> 0xfe + uint32
    otherwise     -> 0xff + uint64
    """
    if n < 0 or n > MAX_VARINT:
        raise ValueError(f'varint out of range: {n}')
    if n < 0xfd:
        return bytes([n])
    if n <= 0xffff:
        return b'\xfd' + pack_le_uint16(n)
    if n <= 0xffffffff:
        return b'\xfe' + pack_le_uint32(n)
    return b'\xff' + pack_le_uint64(n)


def read_varint(data: bytes, offset: int = 0) -> Tuple[int, int]:
    """Decode a varint at *offset*.

    Returns (value, new_offset).  Raises ValueError if the data is
    truncated.
    """
    if offset >= len(data):
        raise ValueError('varint: no data')
    marker = data[offset]
    offset += 1
    if marker < 0xfd:
        return marker, offset
    width = {0xfd: 2, 0xfe: 4, 0xff: 8}[marker]
    if offset + width > len(data):
        raise ValueError('varint: truncated')
    if width == 2:
        n, = unpack_le_uint16_from(data, offset)
    elif width == 4:
        n, = unpack_le_uint32_from(data, offset)
    else:
        n, = unpack_le_uint64_from(data, offset)
    return n, offset + width


def pack_varbytes(data: bytes) -> bytes:
    return pack_varint(len(data)) + data
