"""
Streaming animated PNG (APNG) writer.

Stream layout produced by :class:`ApngWriter`::

    signature
    IHDR                      copied from the first frame's PNG
    tEXt  Software            identification
    acTL  (placeholder)       frame count patched by finalize()
    fcTL  seq 0               frame 0
    IDAT ...                  copied verbatim from frame 0's PNG
    fcTL  seq n               frame k > 0
    fdAT  seq n+1 ...         frame k's IDAT payloads, renumbered
    ...
    IEND

Each frame is first compressed as a standalone PNG by a single-frame
encoder; the writer only reframes the resulting chunks.  The sink must
be seekable because the acTL frame count is unknown until the end.
"""

from __future__ import annotations

import io
import logging
import struct
from typing import BinaryIO, Protocol

from PIL import Image

from apngrec import __version__
from apngrec.chunks import PNG_SIGNATURE, chunk_payload, find_chunks, frame_chunk
from apngrec.exceptions import ConfigurationError, GeometryError, SinkError, StateError
from apngrec.types import StreamState

logger = logging.getLogger(__name__)

DELAY_DENOMINATOR = 1000
MAX_DELAY_MS = 0xFFFF

DISPOSE_OP_NONE = 0
BLEND_OP_OVER = 1

_ACTL = struct.Struct(">II")                 # num_frames, num_plays
_FCTL = struct.Struct(">IIIIIHHBB")          # 26 bytes
_SEQUENCE = struct.Struct(">I")


class SingleFrameEncoder(Protocol):
    def encode(self, image: Image.Image) -> bytes: ...


class PillowPngEncoder:
    """Encode one RGBA image as a standalone PNG using Pillow."""

    def __init__(self, compress_level: int = 6) -> None:
        self.compress_level = compress_level

    def encode(self, image: Image.Image) -> bytes:
        buf = io.BytesIO()
        image.convert("RGBA").save(buf, format="PNG", compress_level=self.compress_level)
        return buf.getvalue()


def _check_delay(delay_ms: int) -> None:
    if not 0 < delay_ms <= MAX_DELAY_MS:
        raise ConfigurationError(
            f"Frame delay must be between 1 and {MAX_DELAY_MS} ms, got {delay_ms}"
        )


class ApngWriter:
    """Write frames one at a time into an APNG stream.

    Usage::

        with open("out.png", "w+b") as sink:
            writer = ApngWriter(sink, 640, 480, default_delay_ms=100)
            for image in images:
                writer.write_frame(image)
            writer.finalize()
    """

    def __init__(
        self,
        sink: BinaryIO,
        canvas_width: int,
        canvas_height: int,
        default_delay_ms: int = 500,
        repeat_count: int = 0,
        frame_encoder: SingleFrameEncoder | None = None,
    ) -> None:
        if sink is None:
            raise ConfigurationError("An output sink is required")
        seekable = getattr(sink, "seekable", None)
        if seekable is None or not seekable():
            raise ConfigurationError("Output sink must support seeking")
        _check_delay(default_delay_ms)
        if repeat_count < 0:
            raise ConfigurationError(f"Repeat count must not be negative, got {repeat_count}")
        if canvas_width <= 0 or canvas_height <= 0:
            raise ConfigurationError(
                f"Canvas must have a positive size, got {canvas_width}x{canvas_height}"
            )

        self.sink = sink
        self.canvas_width = canvas_width
        self.canvas_height = canvas_height
        self.default_delay_ms = default_delay_ms
        self.repeat_count = repeat_count
        self.frame_encoder = frame_encoder or PillowPngEncoder()
        self._state = StreamState()

    # ---- introspection ---------------------------------------------------

    @property
    def frame_count(self) -> int:
        return self._state.frame_count

    @property
    def sequence_number(self) -> int:
        return self._state.chunk_sequence

    @property
    def finalized(self) -> bool:
        return self._state.finalized

    @property
    def state(self) -> StreamState:
        """A copy of the writer's bookkeeping."""
        s = self._state
        return StreamState(
            header_written=s.header_written,
            frame_count=s.frame_count,
            chunk_sequence=s.chunk_sequence,
            header_patch_position=s.header_patch_position,
            finalized=s.finalized,
        )

    # ---- sink access -----------------------------------------------------

    def _write(self, data: bytes) -> None:
        try:
            self.sink.write(data)
        except OSError as exc:
            raise SinkError(f"Failed to write {len(data)} bytes to sink: {exc}") from exc

    def _tell(self) -> int:
        try:
            return self.sink.tell()
        except OSError as exc:
            raise SinkError(f"Failed to query sink position: {exc}") from exc

    def _seek(self, position: int) -> None:
        try:
            self.sink.seek(position)
        except OSError as exc:
            raise SinkError(f"Failed to seek sink to {position}: {exc}") from exc

    def _next_sequence(self) -> int:
        seq = self._state.chunk_sequence
        self._state.chunk_sequence += 1
        return seq

    # ---- chunk builders --------------------------------------------------

    def _actl_chunk(self, num_frames: int) -> bytes:
        return frame_chunk(b"acTL", _ACTL.pack(num_frames, self.repeat_count))

    def _text_chunk(self) -> bytes:
        return frame_chunk(b"tEXt", b"Software\x00" + f"apngrec {__version__}".encode("latin-1"))

    def _write_header(self, png: bytes) -> None:
        ihdr = find_chunks(png, b"IHDR")
        if not ihdr:
            raise ConfigurationError("Frame encoder output contains no IHDR chunk")
        self._write(PNG_SIGNATURE)
        self._write(ihdr[0])
        self._write(self._text_chunk())
        self._state.header_patch_position = self._tell()
        self._write(self._actl_chunk(0))
        self._state.header_written = True
        logger.debug("Header written, acTL placeholder at offset %d",
                     self._state.header_patch_position)

    def _check_geometry(self, width: int, height: int, offset_x: int, offset_y: int) -> None:
        if width <= 0 or height <= 0:
            raise GeometryError(f"Frame has zero area: {width}x{height}")
        if offset_x < 0 or offset_y < 0:
            raise GeometryError(f"Negative frame offset ({offset_x}, {offset_y})")
        if offset_x + width > self.canvas_width or offset_y + height > self.canvas_height:
            raise GeometryError(
                f"Frame {width}x{height} at ({offset_x}, {offset_y}) exceeds "
                f"canvas {self.canvas_width}x{self.canvas_height}"
            )
        if self._state.frame_count == 0 and (
            (width, height) != (self.canvas_width, self.canvas_height)
            or (offset_x, offset_y) != (0, 0)
        ):
            raise GeometryError(
                f"First frame must cover the {self.canvas_width}x{self.canvas_height} "
                f"canvas at (0, 0), got {width}x{height} at ({offset_x}, {offset_y})"
            )

    # ---- public API ------------------------------------------------------

    def write_frame(
        self,
        image: Image.Image,
        delay_ms: int | None = None,
        offset_x: int = 0,
        offset_y: int = 0,
    ) -> None:
        """Append *image* as the next frame, drawn at (offset_x, offset_y)."""
        if self._state.finalized:
            raise StateError("Cannot write a frame after finalize()")
        if delay_ms is None:
            delay_ms = self.default_delay_ms
        _check_delay(delay_ms)
        width, height = image.size
        self._check_geometry(width, height, offset_x, offset_y)

        png = self.frame_encoder.encode(image)
        idats = find_chunks(png, b"IDAT")
        if not idats:
            raise ConfigurationError("Frame encoder output contains no IDAT chunk")

        if not self._state.header_written:
            self._write_header(png)

        fctl = _FCTL.pack(
            self._next_sequence(),
            width,
            height,
            offset_x,
            offset_y,
            delay_ms,
            DELAY_DENOMINATOR,
            DISPOSE_OP_NONE,
            BLEND_OP_OVER,
        )
        self._write(frame_chunk(b"fcTL", fctl))

        # IDAT carries no sequence number; only fcTL and fdAT consume one.
        if self._state.frame_count == 0:
            for block in idats:
                self._write(block)
        else:
            for block in idats:
                seq = _SEQUENCE.pack(self._next_sequence())
                self._write(frame_chunk(b"fdAT", seq + chunk_payload(block)))

        self._state.frame_count += 1
        logger.debug(
            "Frame %d: %dx%d at (%d, %d), %d data chunk(s), next seq %d",
            self._state.frame_count - 1, width, height, offset_x, offset_y,
            len(idats), self._state.chunk_sequence,
        )

    def finalize(self) -> None:
        """Write IEND and patch the acTL frame count.  Runs at most once."""
        if self._state.finalized:
            raise StateError("finalize() already called")
        self._state.finalized = True

        if not self._state.header_written:
            logger.warning("Finalizing an APNG stream with no frames; nothing written")
            return

        self._write(frame_chunk(b"IEND", b""))
        end = self._tell()
        self._seek(self._state.header_patch_position)
        self._write(self._actl_chunk(self._state.frame_count))
        self._seek(end)
        try:
            self.sink.flush()
        except OSError as exc:
            raise SinkError(f"Failed to flush sink: {exc}") from exc
        logger.info("APNG finalized: %d frame(s), %d bytes",
                    self._state.frame_count, end)
