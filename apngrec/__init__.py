"""
apngrec -- screen capture to animated PNG.

Streams a timed sequence of captured frames into a single APNG, encoding
each frame in full, as its changed rectangle, or with unchanged pixels
made transparent.
"""

__version__ = "0.1.0"

from apngrec.analysis import DeltaAnalyzer
from apngrec.config import CaptureConfig, load_config
from apngrec.encoder import ApngWriter, PillowPngEncoder
from apngrec.scheduler import CaptureScheduler, SessionState, run_capture
from apngrec.types import (
    CaptureRegion,
    ChangeRegion,
    EncodingStrategy,
    Frame,
    FrameMode,
    ProgressPhase,
    Timing,
)

__all__ = [
    "ApngWriter",
    "CaptureConfig",
    "CaptureRegion",
    "CaptureScheduler",
    "ChangeRegion",
    "DeltaAnalyzer",
    "EncodingStrategy",
    "Frame",
    "FrameMode",
    "PillowPngEncoder",
    "ProgressPhase",
    "SessionState",
    "Timing",
    "load_config",
    "run_capture",
]
