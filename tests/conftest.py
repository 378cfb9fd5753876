"""
Shared fixtures for the apngrec test suite.
"""

from __future__ import annotations

import io
import struct
from typing import Callable

import pytest
from PIL import Image

from apngrec.chunks import PNG_SIGNATURE
from apngrec.types import CaptureRegion, Frame


def read_chunks(data: bytes) -> list[tuple[bytes, bytes, int]]:
    """Walk a PNG/APNG byte string into (tag, payload, stored_crc) tuples."""
    assert data[:8] == PNG_SIGNATURE
    chunks = []
    pos = 8
    while pos < len(data):
        (length,) = struct.unpack_from(">I", data, pos)
        tag = data[pos + 4:pos + 8]
        payload = data[pos + 8:pos + 8 + length]
        (crc,) = struct.unpack_from(">I", data, pos + 8 + length)
        chunks.append((tag, payload, crc))
        pos += 12 + length
    return chunks


def make_image(
    size: tuple[int, int] = (40, 30),
    color: tuple[int, int, int, int] = (255, 255, 255, 255),
    rect: tuple[int, int, int, int] | None = None,
    rect_color: tuple[int, int, int, int] = (255, 0, 0, 255),
) -> Image.Image:
    """Solid RGBA image with an optional filled rectangle (x0, y0, x1, y1 inclusive)."""
    img = Image.new("RGBA", size, color)
    if rect is not None:
        x0, y0, x1, y1 = rect
        img.paste(rect_color, (x0, y0, x1 + 1, y1 + 1))
    return img


class KeepBytesIO(io.BytesIO):
    """BytesIO that remembers its content when closed."""

    value = b""

    def close(self) -> None:
        if not self.closed:
            self.value = self.getvalue()
        super().close()


class VirtualClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class ScriptedSource:
    """Frame source replaying a list of images; the last one repeats.

    ``cost_s`` is added to the virtual clock per capture, and
    ``on_capture`` (if set) is called with the 0-based capture index
    before the frame is returned.
    """

    def __init__(
        self,
        images: list[Image.Image],
        clock: VirtualClock | None = None,
        cost_s: float | list[float] = 0.0,
        on_capture: Callable[[int], None] | None = None,
    ) -> None:
        self.images = images
        self.clock = clock
        self.cost_s = cost_s
        self.on_capture = on_capture
        self.regions: list[CaptureRegion] = []

    def capture(self, region: CaptureRegion) -> Frame:
        index = len(self.regions)
        self.regions.append(region)
        if self.clock is not None:
            cost = self.cost_s[index] if isinstance(self.cost_s, list) else self.cost_s
            self.clock.advance(cost)
        if self.on_capture is not None:
            self.on_capture(index)
        image = self.images[min(index, len(self.images) - 1)]
        return Frame(image, timestamp=float(index))


@pytest.fixture
def chunk_reader():
    return read_chunks


@pytest.fixture
def image_factory():
    return make_image


@pytest.fixture
def sink():
    return KeepBytesIO()


@pytest.fixture
def clock():
    return VirtualClock()


@pytest.fixture
def scripted_source():
    return ScriptedSource


@pytest.fixture
def moving_dot_images():
    """Ten 100x100 frames with a 10x10 black dot moving right by 8 px."""
    frames = []
    for i in range(10):
        cx = 10 + i * 8
        frames.append(make_image((100, 100), rect=(cx - 5, 45, cx + 4, 54),
                                 rect_color=(0, 0, 0, 255)))
    return frames
