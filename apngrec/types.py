"""
Core data structures shared by the encoder, analyzer and scheduler.
"""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field

import numpy as np
from PIL import Image


class FrameMode(enum.Enum):
    """How each captured frame is turned into an encoded frame."""
    FULL = "full"                         # Whole raster, unmodified.
    DELTA = "delta"                       # Changed bounding rectangle only.
    BLACKOUT = "blackout"                 # Unchanged pixels transparent.
    BLACKOUT_OPAQUE = "blackout-opaque"   # As above, changed pixels alpha 255.


class Timing(enum.Enum):
    """When frames are transformed and encoded."""
    IMMEDIATE = "immediate"   # Inside the capture loop.
    BUFFERED = "buffered"     # After the loop, from an in-memory list.
    STORED = "stored"         # After the loop, from a spooled store.


@dataclass(frozen=True)
class EncodingStrategy:
    """Frame mode x timing, fixed for one capture session."""
    mode: FrameMode = FrameMode.FULL
    timing: Timing = Timing.IMMEDIATE

    @property
    def deferred(self) -> bool:
        return self.timing is not Timing.IMMEDIATE

    @property
    def force_opaque(self) -> bool:
        return self.mode is FrameMode.BLACKOUT_OPAQUE


class ProgressPhase(enum.IntEnum):
    """Integer phase codes delivered to the progress sink."""
    SLEEPING_SKIPPED = 0
    SLEEPING = 1
    PREPARING = 3
    FINISHED = -1
    ERROR = -2


@dataclass(frozen=True)
class CaptureRegion:
    """Screen rectangle to capture, in pixels."""
    left: int
    top: int
    width: int
    height: int

    @property
    def bbox(self) -> tuple[int, int, int, int]:
        """(left, upper, right, lower) as used by Pillow."""
        return (self.left, self.top, self.left + self.width, self.top + self.height)


@dataclass(frozen=True)
class ChangeRegion:
    """Rectangle within a frame; zero width or height means no change."""
    x: int
    y: int
    width: int
    height: int

    @property
    def empty(self) -> bool:
        return self.width == 0 or self.height == 0

    @property
    def box(self) -> tuple[int, int, int, int]:
        return (self.x, self.y, self.x + self.width, self.y + self.height)

    def fits(self, frame_width: int, frame_height: int) -> bool:
        return (
            self.x >= 0
            and self.y >= 0
            and self.x + self.width <= frame_width
            and self.y + self.height <= frame_height
        )

    @classmethod
    def full(cls, width: int, height: int) -> ChangeRegion:
        return cls(0, 0, width, height)


@dataclass(frozen=True)
class Frame:
    """A captured RGBA raster and the wall-clock time it was taken."""
    image: Image.Image
    timestamp: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        if self.image.mode != "RGBA":
            object.__setattr__(self, "image", self.image.convert("RGBA"))

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    @property
    def size(self) -> tuple[int, int]:
        return self.image.size

    def pixels(self) -> np.ndarray:
        """Return an (height, width, 4) uint8 array of the raster."""
        return np.asarray(self.image, dtype=np.uint8)


@dataclass
class StreamState:
    """Mutable bookkeeping of one animated stream writer."""
    header_written: bool = False
    frame_count: int = 0
    chunk_sequence: int = 0
    header_patch_position: int | None = None
    finalized: bool = False
