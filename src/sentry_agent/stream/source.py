"""
Stream Source
=============

Producer loop of a stream: reads frames from the capture source and
assembles them into windowed batches.

This module provides the StreamSource class which:
    - Opens (and reopens after failures) the capture handle
    - Appends frames to the in-progress batch while the window is active
    - Seals and pushes the batch into the WindowBuffer when the window closes
    - Discards frames read while the window is closed and nothing is pending

Design Rules:
    - Read failures are never fatal, only throttled (fixed pause, then reopen)
    - A batch never grows beyond buffer_limit; extra frames are dropped
    - The in-progress batch belongs to one capture session and is
      released, not flushed, when the session ends
    - Runs until the stop event is set; checked once per iteration
"""

import logging
import threading
from datetime import datetime
from typing import Callable, Optional

import numpy as np

from sentry_agent.stream.buffer import WindowBuffer
from sentry_agent.stream.capture import CaptureFactory, CaptureHandle, VideoSource
from sentry_agent.stream.frame import Frame, FrameBatch, make_frame_label


logger = logging.getLogger(__name__)


class SourceMetrics:
    """Metrics for StreamSource observability."""

    __slots__ = (
        "frames_read",
        "frames_buffered",
        "frames_dropped",
        "frames_discarded",
        "frames_abandoned",
        "batches_flushed",
        "read_failures",
        "sessions_opened",
    )

    def __init__(self) -> None:
        self.frames_read: int = 0
        self.frames_buffered: int = 0
        self.frames_dropped: int = 0
        self.frames_discarded: int = 0
        self.frames_abandoned: int = 0
        self.batches_flushed: int = 0
        self.read_failures: int = 0
        self.sessions_opened: int = 0

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {name: getattr(self, name) for name in self.__slots__}


class StreamSource:
    """
    Producer loop for one stream.

    Attributes:
        name: Stream name, used in frame labels and log lines
        source_uri: Capture URI
        buffer_limit: Maximum frames per batch
        metrics: Operational metrics

    Example:
        stop_event = threading.Event()
        source = StreamSource(
            name="garage/motionDetector",
            source_uri="rtsp://camera/stream1",
            buffer=WindowBuffer(),
            is_active=controller.is_active,
            buffer_limit=50,
            stop_event=stop_event,
        )
        threading.Thread(target=source.run).start()
    """

    def __init__(
        self,
        name: str,
        source_uri: str,
        buffer: WindowBuffer,
        is_active: Callable[[], bool],
        buffer_limit: int,
        stop_event: threading.Event,
        capture_factory: CaptureFactory = VideoSource,
        retry_delay: float = 1.0,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        """
        Initialize stream source.

        Args:
            name: Stream name
            source_uri: URI passed to the capture factory
            buffer: WindowBuffer shared with the consumer
            is_active: Reads the active flag (called once per frame)
            buffer_limit: Maximum frames per batch (>= 1)
            stop_event: Set when the stream must stop
            capture_factory: Builds a capture handle for a URI
            retry_delay: Pause after a failed read, in seconds
            clock: Time source for frame labels
        """
        if buffer_limit < 1:
            raise ValueError("buffer_limit must be >= 1")

        self.name = name
        self.source_uri = source_uri
        self.buffer_limit = buffer_limit
        self.retry_delay = retry_delay

        self._buffer = buffer
        self._is_active = is_active
        self._stop_event = stop_event
        self._capture_factory = capture_factory
        self._clock = clock

        self._batch = FrameBatch(name, buffer_limit)
        self.metrics = SourceMetrics()

    @property
    def pending_frames(self) -> int:
        """Frames held in the in-progress batch."""
        return len(self._batch)

    def run(self) -> None:
        """
        Capture until the stop event is set.

        Each outer iteration is one capture session: open the handle,
        read until a failure or stop, then release the handle and the
        in-progress frames.
        """
        logger.info(f"[{self.name}] Capture loop started")

        while not self._stop_event.is_set():
            capture = self._capture_factory(self.source_uri)
            self.metrics.sessions_opened += 1
            try:
                if self._open(capture):
                    logger.debug(f"[{self.name}] Created new capture session")
                self._read_session(capture)
            finally:
                capture.release()
                self._abandon_batch()

        logger.info(f"[{self.name}] Capture loop stopped")

    def handle_frame(self, image: np.ndarray) -> None:
        """
        Route one successfully read frame according to the active flag.

        Active: append to the in-progress batch unless it is full.
        Inactive with pending frames: flush the batch to the buffer.
        Inactive with nothing pending: discard the frame.
        """
        self.metrics.frames_read += 1

        if self._is_active():
            if self._batch.is_full:
                self.metrics.frames_dropped += 1
                return
            captured_at = self._clock()
            frame = Frame(
                label=make_frame_label(self.name, captured_at),
                image=image,
                captured_at=captured_at,
            )
            self._batch.append(frame)
            self.metrics.frames_buffered += 1
        elif self._batch:
            self._flush()
        else:
            self.metrics.frames_discarded += 1

    def _open(self, capture: CaptureHandle) -> bool:
        try:
            return capture.open()
        except Exception as e:
            logger.error(f"[{self.name}] Failed to open capture: {e}")
            return False

    def _read_session(self, capture: CaptureHandle) -> None:
        """Read frames until a failed read or stop."""
        while not self._stop_event.is_set():
            image: Optional[np.ndarray]
            try:
                image = capture.read()
            except Exception as e:
                logger.error(f"[{self.name}] capture.read raised: {e}")
                image = None

            if image is None:
                self.metrics.read_failures += 1
                logger.warning(
                    f"[{self.name}] Read failed or empty frame, "
                    f"retrying in {self.retry_delay:.1f}s"
                )
                self._stop_event.wait(self.retry_delay)
                return

            self.handle_frame(image)

    def _flush(self) -> None:
        """Seal the in-progress batch and hand it to the buffer."""
        batch = self._batch
        self._batch = FrameBatch(self.name, self.buffer_limit)
        self._buffer.push(batch.seal())
        self.metrics.batches_flushed += 1
        logger.info(f"[{self.name}] Flushed batch of {len(batch)} frames")

    def _abandon_batch(self) -> None:
        """Release frames still pending when a capture session ends."""
        if not self._batch:
            return
        released = self._batch.release()
        self.metrics.frames_abandoned += released
        self._batch = FrameBatch(self.name, self.buffer_limit)
        logger.info(f"[{self.name}] Dropped {released} pending frames at session end")
