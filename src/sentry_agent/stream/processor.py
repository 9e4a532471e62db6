"""
Batch Processor
===============

Consumer loop of a stream: evaluates flushed batches and publishes the
best frame when a person is detected.

This module provides the BatchProcessor class which:
    - Pops batches from the WindowBuffer in FIFO order
    - Selects candidate frames at fixed positions
    - Scores each candidate with the detector
    - Stores the best positive candidate, then notifies
    - Releases every frame of the batch afterwards

Candidate positions:
    Indices 1, 2, 3 and length // 2 that fall inside the batch, visited
    in ascending index order. The set skews sampling toward the start
    and the middle of the window.

Design Rules:
    - Detector, store and notify failures drop the batch's detection,
      they never stop the loop
    - Store happens before notify; notify references the storage key
    - Best candidate uses strict '>' so ties keep the earliest frame
"""

import logging
import threading
from datetime import datetime
from typing import Callable, List, Optional

from sentry_agent.egress.notifier import DEFAULT_ATTACHMENT_NAME, Notifier, build_notification
from sentry_agent.egress.storage import ImageStore, build_storage_key
from sentry_agent.models.detection import DetectionCandidate
from sentry_agent.perception.engine import (
    DEFAULT_MIN_CONFIDENCE,
    DEFAULT_TARGET_LABEL,
    Detector,
    person_confidence,
)
from sentry_agent.stream.buffer import WindowBuffer
from sentry_agent.stream.frame import Frame, FrameBatch
from sentry_agent.stream.image_encoder import encode_frame_jpeg


logger = logging.getLogger(__name__)


CANDIDATE_OFFSETS = (1, 2, 3)


def select_candidate_positions(length: int) -> List[int]:
    """
    Select the batch indices submitted to the detector.

    Args:
        length: Number of frames in the batch

    Returns:
        In-bounds indices of {1, 2, 3, length // 2}, ascending. When the
        midpoint collides with 1, 2 or 3 that index is still scored once.

    Example:
        select_candidate_positions(10)  # [1, 2, 3, 5]
        select_candidate_positions(4)   # [1, 2, 3]
        select_candidate_positions(1)   # [0]
    """
    targets = set(CANDIDATE_OFFSETS)
    targets.add(length // 2)
    return [index for index in range(length) if index in targets]


class ProcessorMetrics:
    """Metrics for BatchProcessor observability."""

    __slots__ = (
        "batches_processed",
        "frames_released",
        "candidates_scored",
        "detections",
        "detector_errors",
        "store_errors",
        "notify_errors",
        "last_confidence",
        "last_storage_key",
    )

    def __init__(self) -> None:
        self.batches_processed: int = 0
        self.frames_released: int = 0
        self.candidates_scored: int = 0
        self.detections: int = 0
        self.detector_errors: int = 0
        self.store_errors: int = 0
        self.notify_errors: int = 0
        self.last_confidence: float = 0.0
        self.last_storage_key: Optional[str] = None

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {name: getattr(self, name) for name in self.__slots__}


class BatchProcessor:
    """
    Consumer loop for one stream.

    Attributes:
        name: Stream name (camera name in notifications)
        poll_interval: Sleep when the buffer is empty, in seconds
        metrics: Operational metrics

    Example:
        processor = BatchProcessor(
            name="garage/motionDetector",
            buffer=buffer,
            detector=MockDetector(confidence=90.0),
            store=LocalImageStore("./data"),
            notifier=LogNotifier(),
            stop_event=stop_event,
        )
        threading.Thread(target=processor.run).start()
    """

    def __init__(
        self,
        name: str,
        buffer: WindowBuffer,
        detector: Detector,
        store: ImageStore,
        notifier: Notifier,
        stop_event: threading.Event,
        poll_interval: float = 0.1,
        target_label: str = DEFAULT_TARGET_LABEL,
        min_confidence: float = DEFAULT_MIN_CONFIDENCE,
        attachment_name: str = DEFAULT_ATTACHMENT_NAME,
        encoder: Callable[[Frame], bytes] = encode_frame_jpeg,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        """
        Initialize batch processor.

        Args:
            name: Stream name
            buffer: WindowBuffer shared with the producer
            detector: Scores encoded images
            store: Persists the winning image
            notifier: Sends the detection notification
            stop_event: Set when the stream must stop
            poll_interval: Idle sleep when the buffer is empty
            target_label: Label that counts as a match
            min_confidence: Minimum confidence (0-100) for a match
            attachment_name: File name of the notification attachment
            encoder: Encodes a frame for the detector
            clock: Time source for storage keys and notifications
        """
        self.name = name
        self.poll_interval = poll_interval
        self.target_label = target_label
        self.min_confidence = min_confidence
        self.attachment_name = attachment_name

        self._buffer = buffer
        self._detector = detector
        self._store = store
        self._notifier = notifier
        self._stop_event = stop_event
        self._encoder = encoder
        self._clock = clock

        self.metrics = ProcessorMetrics()

    def run(self) -> None:
        """Process batches until the stop event is set."""
        logger.info(f"[{self.name}] Processing loop started")

        while not self._stop_event.is_set():
            batch = self._buffer.try_pop()
            if batch is None:
                self._stop_event.wait(self.poll_interval)
                continue

            try:
                self.process_batch(batch)
            except Exception as e:
                logger.error(f"[{self.name}] Batch processing error: {e}")

        logger.info(f"[{self.name}] Processing loop stopped")

    def process_batch(self, batch: FrameBatch) -> Optional[DetectionCandidate]:
        """
        Evaluate one batch, publish a detection, release the frames.

        Returns:
            The published candidate, or None if nothing was published.
        """
        try:
            try:
                best = self.evaluate(batch)
            except Exception as e:
                self.metrics.detector_errors += 1
                logger.error(f"[{self.name}] Detection failed, dropping batch: {e}")
                return None

            if best is None:
                logger.debug(f"[{self.name}] No person in batch of {len(batch)} frames")
                return None

            if self.publish(best) is None:
                return None
            return best
        finally:
            self.metrics.frames_released += batch.release()
            self.metrics.batches_processed += 1

    def evaluate(self, batch: FrameBatch) -> Optional[DetectionCandidate]:
        """
        Score the candidate frames of a batch.

        Returns:
            Candidate with the strictly greatest positive confidence,
            or None if no candidate matched.

        Raises:
            Exception: Whatever the encoder or detector raises
        """
        best: Optional[DetectionCandidate] = None

        for position in select_candidate_positions(len(batch)):
            frame = batch[position]
            image_bytes = self._encoder(frame)
            labels = self._detector.score(image_bytes)
            self.metrics.candidates_scored += 1

            confidence = person_confidence(
                labels,
                target_label=self.target_label,
                min_confidence=self.min_confidence,
            )
            logger.debug(
                f"[{self.name}] Candidate {position}/{len(batch)} "
                f"({frame.label}): confidence={confidence:.2f}"
            )

            best_confidence = best.confidence if best is not None else 0.0
            if confidence > best_confidence:
                best = DetectionCandidate(
                    frame=frame,
                    confidence=confidence,
                    position_index=position,
                    image_bytes=image_bytes,
                )

        return best

    def publish(self, candidate: DetectionCandidate) -> Optional[str]:
        """
        Store the winning image, then notify.

        Returns:
            Storage key, or None if the store failed (notify is skipped).
        """
        now = self._clock()
        key = build_storage_key(
            self.name,
            now,
            candidate.confidence,
            candidate.position_index,
        )

        try:
            self._store.put(key, candidate.image_bytes)
        except Exception as e:
            self.metrics.store_errors += 1
            logger.error(f"[{self.name}] Store failed for {key}, dropping detection: {e}")
            return None

        self.metrics.detections += 1
        self.metrics.last_confidence = candidate.confidence
        self.metrics.last_storage_key = key
        logger.info(
            f"[{self.name}] Person with confidence {candidate.confidence:.2f} "
            f"stored as {key}"
        )

        notification = build_notification(
            camera_name=self.name,
            storage_key=key,
            timestamp=now,
            attachment=candidate.image_bytes,
            attachment_name=self.attachment_name,
        )
        try:
            self._notifier.notify(
                subject=notification.subject,
                body=notification.body,
                attachment=notification.attachment,
                attachment_name=notification.attachment_name,
                storage_key=notification.storage_key,
            )
        except Exception as e:
            self.metrics.notify_errors += 1
            logger.error(f"[{self.name}] Notification failed for {key}: {e}")

        return key
