"""
Pixel-difference analysis between consecutive frames.

The analyzer keeps exactly one baseline raster (the previous frame) and
answers two questions about a new frame: which rectangle changed, and
what the frame looks like with every unchanged pixel made transparent.
Only the colour channels take part in the comparison; alpha is ignored.
"""

from __future__ import annotations

import logging

import numpy as np
from PIL import Image

from apngrec.types import ChangeRegion, Frame

logger = logging.getLogger(__name__)

# Smallest frame the scheduler writes when nothing changed.
PLACEHOLDER_SIZE = 2


class DeltaAnalyzer:
    """Compare frames against a single retained baseline."""

    def __init__(self) -> None:
        self._baseline: np.ndarray | None = None

    @property
    def has_baseline(self) -> bool:
        return self._baseline is not None

    def reset(self) -> None:
        """Drop the baseline; the next frame counts as fully changed."""
        self._baseline = None

    def _unchanged_mask(self, pixels: np.ndarray) -> np.ndarray | None:
        """Boolean (h, w) mask of pixels whose RGB equals the baseline."""
        if self._baseline is None or self._baseline.shape != pixels.shape:
            return None
        return np.all(self._baseline[..., :3] == pixels[..., :3], axis=2)

    def compute_change_region(self, frame: Frame) -> ChangeRegion:
        """Return the minimal rectangle enclosing every changed pixel.

        With no baseline (or a baseline of different size) the full frame
        is returned.  Two identical frames give a zero-area region.  The
        baseline is replaced by *frame* in every case.
        """
        pixels = frame.pixels()
        unchanged = self._unchanged_mask(pixels)
        self._baseline = pixels

        if unchanged is None:
            return ChangeRegion.full(frame.width, frame.height)

        ys, xs = np.nonzero(~unchanged)
        if xs.size == 0:
            return ChangeRegion(0, 0, 0, 0)

        x0, x1 = int(xs.min()), int(xs.max())
        y0, y1 = int(ys.min()), int(ys.max())
        region = ChangeRegion(x0, y0, x1 - x0 + 1, y1 - y0 + 1)
        logger.debug("Change region %s", region)
        return region

    def crop(self, frame: Frame, region: ChangeRegion) -> Image.Image | None:
        """Cut *region* out of *frame*; None when the region is empty."""
        if region.empty:
            return None
        return frame.image.crop(region.box)

    def blackout(self, frame: Frame, force_opaque: bool = False) -> Image.Image:
        """Return *frame* with pixels equal to the baseline made transparent.

        Remaining pixels are kept as captured, or with alpha forced to 255
        when *force_opaque* is set.  The baseline becomes the untouched
        *frame*.
        """
        pixels = frame.pixels()
        unchanged = self._unchanged_mask(pixels)
        self._baseline = pixels

        out = pixels.copy()
        if unchanged is None:
            if force_opaque:
                out[..., 3] = 255
        else:
            if force_opaque:
                out[~unchanged, 3] = 255
            out[unchanged] = 0
        return Image.fromarray(out)


def clamp_region(
    region: ChangeRegion,
    frame_width: int,
    frame_height: int,
    anchor: tuple[int, int] = (0, 0),
) -> ChangeRegion:
    """Replace a zero-area region by a small placeholder box.

    The placeholder is PLACEHOLDER_SIZE square, placed just up-left of
    *anchor* (the previous frame's offset) and kept inside the frame.
    Non-empty regions are returned unchanged.
    """
    if not region.empty:
        return region

    width = min(PLACEHOLDER_SIZE, frame_width)
    height = min(PLACEHOLDER_SIZE, frame_height)
    ax, ay = anchor
    x = ax - 2 if ax > 4 else 2
    y = ay - 2 if ay > 4 else 2
    x = max(0, min(x, frame_width - width))
    y = max(0, min(y, frame_height - height))
    return ChangeRegion(x, y, width, height)
