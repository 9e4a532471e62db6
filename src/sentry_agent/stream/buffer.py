"""
Window Buffer
=============

Thread-safe FIFO of sealed frame batches.

This module provides the WindowBuffer class, the only hand-off point
between a stream's producer thread and its consumer thread.

Design Rules:
    - push appends at the tail, try_pop removes from the head
    - Every mutation happens under a single lock
    - Unbounded by default; an optional soft cap drops the oldest batch
    - Does NOT process or modify batches
"""

import logging
import threading
from collections import deque
from typing import Deque, List, Optional

from sentry_agent.stream.frame import FrameBatch


logger = logging.getLogger(__name__)


class WindowBuffer:
    """
    Thread-safe FIFO queue of FrameBatch.

    Shared by exactly one producer and one consumer per stream. The
    buffer itself does not bound its length: bounding is per batch
    (buffer_limit). If the consumer falls behind, queued batches
    accumulate unless ``max_batches`` is set, in which case the oldest
    batch is released and dropped to make room.

    Attributes:
        max_batches: Optional soft cap (None = unbounded)
        dropped_count: Batches dropped because of the soft cap

    Example:
        buffer = WindowBuffer()

        # Producer
        buffer.push(batch.seal())

        # Consumer
        batch = buffer.try_pop()
        if batch is not None:
            process(batch)
    """

    def __init__(self, max_batches: Optional[int] = None) -> None:
        """
        Initialize window buffer.

        Args:
            max_batches: Soft cap on queued batches. None = unbounded.
        """
        if max_batches is not None and max_batches < 1:
            raise ValueError("max_batches must be >= 1")

        self._max_batches = max_batches
        self._queue: Deque[FrameBatch] = deque()
        self._lock = threading.Lock()
        self._dropped_count: int = 0
        self._total_pushed: int = 0
        self._total_popped: int = 0

    @property
    def max_batches(self) -> Optional[int]:
        """Soft cap on queued batches."""
        return self._max_batches

    @property
    def size(self) -> int:
        """Current number of queued batches."""
        with self._lock:
            return len(self._queue)

    @property
    def dropped_count(self) -> int:
        """Number of batches dropped due to the soft cap."""
        return self._dropped_count

    def __len__(self) -> int:
        return self.size

    def push(self, batch: FrameBatch) -> bool:
        """
        Append a sealed batch at the tail.

        Args:
            batch: Batch to hand over. Ownership passes to the buffer.

        Returns:
            True if nothing was dropped, False if the oldest batch was
            dropped to honour the soft cap.
        """
        batch.seal()
        dropped: Optional[FrameBatch] = None
        with self._lock:
            self._total_pushed += 1
            if self._max_batches is not None and len(self._queue) >= self._max_batches:
                dropped = self._queue.popleft()
                self._dropped_count += 1
            self._queue.append(batch)

        if dropped is not None:
            released = dropped.release()
            logger.warning(
                f"Window buffer full ({self._max_batches}), dropped oldest batch "
                f"of {dropped.stream_name} ({released} frames). "
                f"Total dropped: {self._dropped_count}"
            )
            return False
        return True

    def try_pop(self) -> Optional[FrameBatch]:
        """
        Remove and return the head batch.

        Returns:
            Oldest queued batch, or None if the buffer is empty.
        """
        with self._lock:
            if not self._queue:
                return None
            self._total_popped += 1
            return self._queue.popleft()

    def drain(self) -> List[FrameBatch]:
        """
        Remove every queued batch.

        Returns:
            The removed batches in FIFO order. The caller owns them.
        """
        with self._lock:
            batches = list(self._queue)
            self._queue.clear()
        return batches

    def clear(self) -> int:
        """
        Drain and release every queued batch.

        Returns:
            Number of frames released.
        """
        released = 0
        for batch in self.drain():
            released += batch.release()
        return released

    def metrics(self) -> dict:
        """
        Get buffer metrics for observability.

        Returns:
            Dict with size, max_batches, dropped_count, total_pushed, total_popped
        """
        with self._lock:
            size = len(self._queue)
            total_pushed = self._total_pushed
            total_popped = self._total_popped
        return {
            "size": size,
            "max_batches": self._max_batches,
            "dropped_count": self._dropped_count,
            "total_pushed": total_pushed,
            "total_popped": total_popped,
        }
