"""
CRC-32 as used by PNG chunk trailers.

Polynomial 0xEDB88320 (reflected), initial value 0xFFFFFFFF, final
complement -- identical to zlib's crc32, which does the table work.
"""

from __future__ import annotations

import zlib


def compute(data: bytes) -> int:
    """Return the unsigned 32-bit CRC of *data*."""
    return zlib.crc32(data) & 0xFFFFFFFF


def compute_parts(*parts: bytes) -> int:
    """CRC over the concatenation of *parts* without joining them."""
    crc = 0
    for part in parts:
        crc = zlib.crc32(part, crc)
    return crc & 0xFFFFFFFF
