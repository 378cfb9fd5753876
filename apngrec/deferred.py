"""
Frame collections for deferred encoding.

Deferred sessions only capture inside the timed loop and leave the
transform and encode work until the loop has ended.  Frames are kept
either in memory or spooled to disk keyed by capture index; both
collections share one interface and always replay in capture order.
"""

from __future__ import annotations

import abc
import logging
import shutil
import tempfile
from pathlib import Path
from typing import Iterator

from PIL import Image

from apngrec.types import Frame, Timing

logger = logging.getLogger(__name__)


class DeferredFrames(abc.ABC):
    """Append-only frame collection replayed in capture order."""

    @abc.abstractmethod
    def __len__(self) -> int: ...

    @abc.abstractmethod
    def append(self, frame: Frame) -> None: ...

    @abc.abstractmethod
    def __iter__(self) -> Iterator[Frame]: ...

    @abc.abstractmethod
    def close(self) -> None:
        """Release everything held by the collection."""


class FrameBuffer(DeferredFrames):
    """Ordered in-memory list of captured frames."""

    def __init__(self) -> None:
        self._frames: list[Frame] = []

    def __len__(self) -> int:
        return len(self._frames)

    def append(self, frame: Frame) -> None:
        self._frames.append(frame)

    def __iter__(self) -> Iterator[Frame]:
        return iter(list(self._frames))

    def close(self) -> None:
        self._frames.clear()


class SpooledFrameStore(DeferredFrames):
    """Frames written to a temporary directory as ``frame_NNNNN.png``.

    Only the capture timestamps stay in memory.  The directory is removed
    by :meth:`close`.
    """

    def __init__(self, spool_dir: Path | None = None) -> None:
        self._root = Path(tempfile.mkdtemp(prefix="apngrec_spool_", dir=spool_dir))
        self._timestamps: dict[int, float] = {}
        logger.debug("Spooling frames to %s", self._root)

    def __len__(self) -> int:
        return len(self._timestamps)

    def _path(self, index: int) -> Path:
        return self._root / f"frame_{index:05d}.png"

    def append(self, frame: Frame) -> None:
        index = len(self._timestamps)
        frame.image.save(self._path(index), format="PNG", compress_level=1)
        self._timestamps[index] = frame.timestamp

    def get(self, index: int) -> Frame:
        with Image.open(self._path(index)) as img:
            img.load()
            return Frame(img.convert("RGBA"), self._timestamps[index])

    def __iter__(self) -> Iterator[Frame]:
        for index in sorted(self._timestamps):
            yield self.get(index)

    @property
    def root(self) -> Path:
        return self._root

    def close(self) -> None:
        self._timestamps.clear()
        shutil.rmtree(self._root, ignore_errors=True)


def open_deferred(timing: Timing, spool_dir: Path | None = None) -> DeferredFrames:
    """Return the collection matching a deferred *timing*."""
    if timing is Timing.BUFFERED:
        return FrameBuffer()
    if timing is Timing.STORED:
        return SpooledFrameStore(spool_dir)
    raise ValueError(f"{timing} is not a deferred timing")
