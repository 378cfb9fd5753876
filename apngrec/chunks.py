"""
PNG chunk framing and lookup.

Every chunk is laid out as::

    length (4, big-endian) | tag (4, ASCII) | payload | CRC-32 (4)

where the CRC covers tag + payload.  All integers in the format are
big-endian.
"""

from __future__ import annotations

import struct

from apngrec import checksum

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"

_LENGTH = struct.Struct(">I")
_HEADER_SIZE = 8    # length + tag
_TRAILER_SIZE = 4   # CRC


def frame_chunk(tag: bytes, payload: bytes) -> bytes:
    """Wrap *payload* in a length-prefixed, CRC-terminated chunk."""
    if len(tag) != 4:
        raise ValueError(f"Chunk tag must be 4 bytes, got {tag!r}")
    return (
        _LENGTH.pack(len(payload))
        + tag
        + payload
        + _LENGTH.pack(checksum.compute_parts(tag, payload))
    )


def chunk_payload(block: bytes) -> bytes:
    """Strip length, tag and CRC from a raw chunk block."""
    (length,) = _LENGTH.unpack_from(block, 0)
    return block[_HEADER_SIZE:_HEADER_SIZE + length]


def find_chunks(buffer: bytes, tag: bytes) -> list[bytes]:
    """Return every complete chunk block in *buffer* whose tag is *tag*.

    The buffer is scanned for each occurrence of *tag*; the four bytes
    before it are read as the payload length and the whole block is
    extracted.  A candidate is only accepted when it fits inside the
    buffer and its stored CRC matches, which rejects accidental tag
    bytes inside compressed payloads.  Scanning resumes after the end
    of an accepted block.  Results are in buffer order.
    """
    found: list[bytes] = []
    view = bytes(buffer)
    pos = view.find(tag, 4)
    while pos != -1:
        start = pos - 4
        (length,) = _LENGTH.unpack_from(view, start)
        end = pos + 4 + length + _TRAILER_SIZE
        if end <= len(view):
            block = view[start:end]
            (stored_crc,) = _LENGTH.unpack_from(block, end - start - _TRAILER_SIZE)
            if stored_crc == checksum.compute(block[4:-_TRAILER_SIZE]):
                found.append(block)
                pos = view.find(tag, end + 4)
                continue
        pos = view.find(tag, pos + 1)
    return found
