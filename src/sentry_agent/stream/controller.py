"""
Stream Controller
=================

Lifecycle of one stream: composes a StreamSource (producer) and a
BatchProcessor (consumer) around a shared WindowBuffer.

State machine:
    CREATED --start()--> RUNNING --stop()--> STOPPING --> STOPPED
    CREATED --stop()---> STOPPING --> STOPPED

STOPPING lasts while both threads are joined and the buffer is drained.
Any stop() call returns only once STOPPED is reached. STOPPED is
terminal. A stopped controller cannot be restarted; build a new one
instead so no stale capture or processing thread is revived.

Shared state between the two threads is limited to the WindowBuffer
(its own lock) and the active flag (a separate lock), so toggling the
window never waits on batch transfer.
"""

import logging
import threading
from enum import Enum
from typing import Callable, Optional

from sentry_agent.egress.notifier import DEFAULT_ATTACHMENT_NAME, Notifier
from sentry_agent.egress.storage import ImageStore
from sentry_agent.models.detection import StreamIdentity
from sentry_agent.perception.engine import (
    DEFAULT_MIN_CONFIDENCE,
    DEFAULT_TARGET_LABEL,
    Detector,
)
from sentry_agent.stream.buffer import WindowBuffer
from sentry_agent.stream.capture import CaptureFactory, VideoSource
from sentry_agent.stream.frame import Frame
from sentry_agent.stream.image_encoder import encode_frame_jpeg
from sentry_agent.stream.processor import BatchProcessor
from sentry_agent.stream.source import StreamSource


logger = logging.getLogger(__name__)


class StreamState(str, Enum):
    """Lifecycle states of a StreamController."""

    CREATED = "created"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


class StreamStateError(RuntimeError):
    """Raised on an invalid lifecycle transition."""
    pass


class StreamController:
    """
    Per-stream controller owning the active and running flags.

    Attributes:
        identity: Stream name and source URI
        state: Current lifecycle state
        buffer: WindowBuffer between producer and consumer
        source: Producer loop
        processor: Consumer loop

    Example:
        controller = StreamController(
            identity=StreamIdentity("garage/motionDetector", "rtsp://cam/1"),
            buffer_limit=50,
            detector=detector,
            store=store,
            notifier=notifier,
        )
        controller.start()
        controller.activate()
        ...
        controller.deactivate()
        controller.stop()
    """

    def __init__(
        self,
        identity: StreamIdentity,
        buffer_limit: int,
        detector: Detector,
        store: ImageStore,
        notifier: Notifier,
        capture_factory: CaptureFactory = VideoSource,
        capture_retry_delay: float = 1.0,
        poll_interval: float = 0.1,
        max_queued_batches: Optional[int] = None,
        target_label: str = DEFAULT_TARGET_LABEL,
        min_confidence: float = DEFAULT_MIN_CONFIDENCE,
        attachment_name: str = DEFAULT_ATTACHMENT_NAME,
        encoder: Callable[[Frame], bytes] = encode_frame_jpeg,
    ) -> None:
        self.identity = identity

        self._state = StreamState.CREATED
        self._state_lock = threading.Lock()

        self._active: bool = False
        self._active_lock = threading.Lock()

        # Set <=> running is false. Never cleared once set.
        self._stop_event = threading.Event()
        # Set once threads are joined and the buffer is drained.
        self._stopped_event = threading.Event()

        self._producer: Optional[threading.Thread] = None
        self._consumer: Optional[threading.Thread] = None

        self.buffer = WindowBuffer(max_batches=max_queued_batches)
        self.source = StreamSource(
            name=identity.name,
            source_uri=identity.source_uri,
            buffer=self.buffer,
            is_active=self.is_active,
            buffer_limit=buffer_limit,
            stop_event=self._stop_event,
            capture_factory=capture_factory,
            retry_delay=capture_retry_delay,
        )
        self.processor = BatchProcessor(
            name=identity.name,
            buffer=self.buffer,
            detector=detector,
            store=store,
            notifier=notifier,
            stop_event=self._stop_event,
            poll_interval=poll_interval,
            target_label=target_label,
            min_confidence=min_confidence,
            attachment_name=attachment_name,
            encoder=encoder,
        )

    @property
    def name(self) -> str:
        return self.identity.name

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is StreamState.RUNNING

    def is_active(self) -> bool:
        """Read the active flag (called by the producer once per frame)."""
        with self._active_lock:
            return self._active

    def start(self) -> "StreamController":
        """
        Launch the producer and consumer threads.

        Raises:
            StreamStateError: If the controller was already stopped
        """
        with self._state_lock:
            if self._state is StreamState.RUNNING:
                logger.warning(f"[{self.name}] start() ignored, already running")
                return self
            if self._state in (StreamState.STOPPING, StreamState.STOPPED):
                raise StreamStateError(
                    f"Stream {self.name} is stopped; create a new controller to restart"
                )

            self._producer = threading.Thread(
                target=self.source.run,
                name=f"capture[{self.name}]",
                daemon=True,
            )
            self._consumer = threading.Thread(
                target=self.processor.run,
                name=f"process[{self.name}]",
                daemon=True,
            )
            self._state = StreamState.RUNNING
            self._producer.start()
            self._consumer.start()

        logger.info(f"[{self.name}] Started capture and processing threads")
        return self

    def stop(self) -> None:
        """
        Stop both loops, then drain and release queued batches.

        Blocks until both threads have exited; an in-flight blocking
        read or detector call delays the return. Idempotent: a concurrent
        or repeated call waits for the first one to finish.
        """
        with self._state_lock:
            already_stopping = self._state in (StreamState.STOPPING, StreamState.STOPPED)
            if not already_stopping:
                was_running = self._state is StreamState.RUNNING
                self._state = StreamState.STOPPING
                self._stop_event.set()

        if already_stopping:
            self._stopped_event.wait()
            return

        try:
            if was_running:
                for thread in (self._producer, self._consumer):
                    if thread is not None and thread is not threading.current_thread():
                        thread.join()

            released = self.buffer.clear()
            logger.info(
                f"[{self.name}] Stopped, released {released} queued frames"
            )
        finally:
            with self._state_lock:
                self._state = StreamState.STOPPED
            self._stopped_event.set()

    def activate(self) -> bool:
        """
        Open the active window.

        Returns:
            True if the flag was changed, False if ignored (stopped).
        """
        return self._set_active(True)

    def deactivate(self) -> bool:
        """
        Close the active window.

        Returns:
            True if the flag was changed, False if ignored (stopped).
        """
        return self._set_active(False)

    def _set_active(self, value: bool) -> bool:
        # Lock order: state, then active. stop() never takes the active lock.
        with self._state_lock:
            if self._state in (StreamState.STOPPING, StreamState.STOPPED):
                logger.info(
                    f"[{self.name}] {'activate' if value else 'deactivate'} ignored, stream stopped"
                )
                return False
            with self._active_lock:
                self._active = value
        logger.info(f"[{self.name}] Reading frames {'START' if value else 'STOP'}")
        return True

    def snapshot(self) -> dict:
        """State and metrics of the stream for observability."""
        return {
            "name": self.name,
            "state": self._state.value,
            "active": self.is_active(),
            "pending_frames": self.source.pending_frames,
            "buffer": self.buffer.metrics(),
            "source": self.source.metrics.to_dict(),
            "processor": self.processor.metrics.to_dict(),
        }
