"""
Timed capture loop driving the analyzer and the APNG writer.

One session runs on a single asyncio timeline::

    for each target frame:
        sleep(interval - time spent on the previous capture)   # drift fix
        report SLEEPING / SLEEPING_SKIPPED
        stop here if cancel() was requested
        capture -> (buffer | analyze + encode)

The target frame count is ``duration * 1000 // interval``; duration is a
frame budget, not a deadline.  Whatever way the loop ends, the writer is
finalized when possible and the sink, analyzer baseline and deferred
frames are released.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from pathlib import Path
from typing import Awaitable, BinaryIO, Callable

from PIL import Image

from apngrec.analysis import DeltaAnalyzer, clamp_region
from apngrec.config import CaptureConfig
from apngrec.deferred import DeferredFrames, open_deferred
from apngrec.encoder import ApngWriter, SingleFrameEncoder
from apngrec.exceptions import ApngRecError, ConfigurationError, StateError
from apngrec.sources import FrameSource, ScreenGrabSource
from apngrec.types import (
    CaptureRegion,
    EncodingStrategy,
    Frame,
    FrameMode,
    ProgressPhase,
)

logger = logging.getLogger(__name__)

ProgressSink = Callable[[int], None]


class SessionState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


def target_frame_count(duration_s: float, interval_ms: int) -> int:
    """Number of frames a session of *duration_s* captures."""
    return int(round(duration_s * 1000)) // interval_ms


class CaptureScheduler:
    """Capture frames on a fixed cadence and stream them into an APNG.

    A scheduler runs exactly one session: once it has completed, been
    cancelled or failed, the sink is closed and a new scheduler is needed.
    :meth:`cancel` must be called from the event loop thread (use
    ``loop.call_soon_threadsafe(scheduler.cancel)`` from elsewhere).
    """

    def __init__(
        self,
        sink: BinaryIO,
        source: FrameSource,
        progress: ProgressSink | None = None,
        *,
        repeat_count: int = 0,
        frame_delay_ms: int | None = None,
        frame_encoder: SingleFrameEncoder | None = None,
        spool_dir: Path | None = None,
        clock: Callable[[], float] = time.perf_counter,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        self.sink = sink
        self.source = source
        self.progress = progress
        self.repeat_count = repeat_count
        self.frame_delay_ms = frame_delay_ms
        self.frame_encoder = frame_encoder
        self.spool_dir = spool_dir
        self._clock = clock
        self._sleep = sleep or self._interruptible_sleep

        self._state = SessionState.IDLE
        self._cancel_requested = False
        self._wake: asyncio.Event | None = None
        self._last_offset = (0, 0)
        self.frames_captured = 0
        self.frames_written = 0

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is SessionState.RUNNING

    def cancel(self) -> None:
        """Ask the running loop to stop before its next capture."""
        if self._state is not SessionState.RUNNING:
            logger.debug("cancel() ignored in state %s", self._state.value)
            return
        self._cancel_requested = True
        if self._wake is not None:
            self._wake.set()

    def _emit(self, phase: ProgressPhase) -> None:
        if self.progress is not None:
            self.progress(int(phase))

    async def _interruptible_sleep(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    # ---- session ---------------------------------------------------------

    async def start(
        self,
        duration_s: float,
        region: CaptureRegion,
        interval_ms: int,
        strategy: EncodingStrategy = EncodingStrategy(),
    ) -> SessionState:
        """Run one capture session to completion or cancellation.

        Returns the terminal state.  Exceptions from capture, analysis or
        encoding abort the session and are re-raised after cleanup.
        """
        if self._state is SessionState.RUNNING:
            raise StateError("A capture session is already running")
        if self._state is not SessionState.IDLE:
            raise StateError(
                f"Scheduler already {self._state.value}; create a new one per session"
            )
        if interval_ms <= 0:
            raise ConfigurationError(f"Interval must be positive, got {interval_ms}")
        if duration_s <= 0:
            raise ConfigurationError(f"Duration must be positive, got {duration_s}")

        self._state = SessionState.RUNNING
        self._cancel_requested = False
        self._wake = asyncio.Event()
        target = target_frame_count(duration_s, interval_ms)
        analyzer = DeltaAnalyzer()
        deferred: DeferredFrames | None = None
        writer: ApngWriter | None = None
        logger.info(
            "Capture session: %d frame(s) every %d ms over %s, strategy %s/%s",
            target, interval_ms, region, strategy.mode.value, strategy.timing.value,
        )

        try:
            writer = ApngWriter(
                self.sink,
                region.width,
                region.height,
                default_delay_ms=self.frame_delay_ms or interval_ms,
                repeat_count=self.repeat_count,
                frame_encoder=self.frame_encoder,
            )
            if strategy.deferred:
                deferred = open_deferred(strategy.timing, self.spool_dir)

            self._emit(ProgressPhase.PREPARING)
            await self._capture_loop(target, region, interval_ms, strategy,
                                     writer, analyzer, deferred)
            stopped_early = self._cancel_requested
            self._emit(ProgressPhase.FINISHED)

            if deferred is not None:
                self._drain(deferred, strategy, writer, analyzer)
            writer.finalize()
        except BaseException as exc:
            cancelled = isinstance(exc, asyncio.CancelledError)
            self._state = SessionState.CANCELLED if cancelled else SessionState.FAILED
            if cancelled:
                self._emit(ProgressPhase.FINISHED)
            else:
                logger.error("Capture session failed: %s", exc)
                self._emit(ProgressPhase.ERROR)
            self._finalize_after_abort(writer)
            raise
        else:
            self._state = (SessionState.CANCELLED if stopped_early
                           else SessionState.COMPLETED)
        finally:
            self._release(analyzer, deferred)

        logger.info("Capture session %s: %d captured, %d written",
                    self._state.value, self.frames_captured, self.frames_written)
        if self.frames_written == 0:
            logger.warning("No frames written; the output sink is empty, not an APNG")
        return self._state

    async def _capture_loop(
        self,
        target: int,
        region: CaptureRegion,
        interval_ms: int,
        strategy: EncodingStrategy,
        writer: ApngWriter,
        analyzer: DeltaAnalyzer,
        deferred: DeferredFrames | None,
    ) -> None:
        spent_ms = 0.0
        for index in range(target):
            sleep_ms = max(0.0, interval_ms - spent_ms)
            if sleep_ms > 0:
                await self._sleep(sleep_ms / 1000)
                self._emit(ProgressPhase.SLEEPING)
            else:
                self._emit(ProgressPhase.SLEEPING_SKIPPED)

            if self._cancel_requested:
                logger.info("Capture cancelled after %d of %d frame(s)", index, target)
                return

            started = self._clock()
            frame = self.source.capture(region)
            self.frames_captured += 1
            if deferred is not None:
                deferred.append(frame)
            else:
                self._encode(frame, strategy, writer, analyzer)
            spent_ms = (self._clock() - started) * 1000
            logger.debug("Frame %d took %.1f ms (slept %.1f ms)", index, spent_ms, sleep_ms)

    def _encode(
        self,
        frame: Frame,
        strategy: EncodingStrategy,
        writer: ApngWriter,
        analyzer: DeltaAnalyzer,
    ) -> None:
        if strategy.mode is FrameMode.DELTA:
            region = analyzer.compute_change_region(frame)
            region = clamp_region(region, frame.width, frame.height, self._last_offset)
            self._write(writer, analyzer.crop(frame, region), region.x, region.y)
            self._last_offset = (region.x, region.y)
        elif strategy.mode is FrameMode.FULL:
            self._write(writer, frame.image)
        else:
            self._write(writer, analyzer.blackout(frame, strategy.force_opaque))

    def _drain(
        self,
        deferred: DeferredFrames,
        strategy: EncodingStrategy,
        writer: ApngWriter,
        analyzer: DeltaAnalyzer,
    ) -> None:
        logger.info("Encoding %d deferred frame(s)", len(deferred))
        for frame in deferred:
            self._write(writer, analyzer.blackout(frame, strategy.force_opaque))

    def _write(self, writer: ApngWriter, image: Image.Image,
               offset_x: int = 0, offset_y: int = 0) -> None:
        writer.write_frame(image, offset_x=offset_x, offset_y=offset_y)
        self.frames_written += 1

    # ---- cleanup ---------------------------------------------------------

    def _finalize_after_abort(self, writer: ApngWriter | None) -> None:
        if writer is None or writer.finalized:
            return
        try:
            writer.finalize()
        except (ApngRecError, OSError) as exc:
            logger.warning("Could not finalize stream after abort: %s", exc)

    def _release(self, analyzer: DeltaAnalyzer, deferred: DeferredFrames | None) -> None:
        analyzer.reset()
        if deferred is not None:
            deferred.close()
        self._wake = None
        try:
            self.sink.close()
        except OSError as exc:
            logger.warning("Failed to close sink: %s", exc)


async def run_capture(
    config: CaptureConfig,
    sink: BinaryIO,
    source: FrameSource | None = None,
    progress: ProgressSink | None = None,
) -> CaptureScheduler:
    """Run one session described by *config*."""
    config.validate()
    scheduler = CaptureScheduler(
        sink,
        source or ScreenGrabSource(),
        progress,
        repeat_count=config.repeat_count,
        frame_delay_ms=config.frame_delay_ms,
        spool_dir=config.spool_dir,
    )
    await scheduler.start(config.duration_s, config.region,
                          config.interval_ms, config.strategy)
    return scheduler
