"""
Frame sources.

Anything with ``capture(region) -> Frame`` can feed a capture session.
:class:`ScreenGrabSource` grabs the desktop through Pillow's ImageGrab.
"""

from __future__ import annotations

import time
from typing import Protocol

from PIL import Image, ImageGrab

from apngrec.types import CaptureRegion, Frame


class FrameSource(Protocol):
    def capture(self, region: CaptureRegion) -> Frame: ...


class ScreenGrabSource:
    """Capture a screen rectangle with :func:`PIL.ImageGrab.grab`."""

    def __init__(self, all_screens: bool = True) -> None:
        self.all_screens = all_screens

    def capture(self, region: CaptureRegion) -> Frame:
        timestamp = time.time()
        img = ImageGrab.grab(bbox=region.bbox, all_screens=self.all_screens)
        # HiDPI displays can return more pixels than requested.
        if img.size != (region.width, region.height):
            img = img.resize((region.width, region.height), Image.LANCZOS)
        return Frame(img.convert("RGBA"), timestamp)
