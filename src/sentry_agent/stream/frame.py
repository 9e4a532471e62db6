"""
Frame Data Model
=================

Internal frame and batch representation for the capture pipeline.

Design Rules:
    - A Frame is owned by exactly one FrameBatch at a time
    - Every frame image is released exactly once
    - A batch never holds more than its limit
    - A sealed batch is immutable
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterator, List, Optional

import numpy as np


LABEL_TIME_FORMAT = "%Y-%m-%d_%H:%M:%S"


class FrameReleasedError(RuntimeError):
    """Raised when a frame image is released (or used) after release."""
    pass


class BatchSealedError(RuntimeError):
    """Raised when a sealed batch is mutated."""
    pass


def make_frame_label(stream_name: str, captured_at: datetime) -> str:
    """Build the identifying label of a frame: '<stream>_<timestamp>'."""
    return f"{stream_name}_{captured_at.strftime(LABEL_TIME_FORMAT)}"


@dataclass(slots=True)
class Frame:
    """
    Decoded frame captured from a stream.

    Attributes:
        label: Stream name combined with the capture timestamp
        image: BGR image (H, W, 3), dtype=uint8. None once released
        captured_at: Wall-clock capture time
    """

    label: str
    image: Optional[np.ndarray]
    captured_at: datetime = field(default_factory=datetime.now)
    _released: bool = field(default=False, repr=False)

    @property
    def released(self) -> bool:
        """Whether the image has been released."""
        return self._released

    def require_image(self) -> np.ndarray:
        """Return the image, failing if it was already released."""
        if self._released or self.image is None:
            raise FrameReleasedError(f"Frame {self.label} has been released")
        return self.image

    def release(self) -> None:
        """
        Drop the image buffer.

        Raises:
            FrameReleasedError: If the frame was already released
        """
        if self._released:
            raise FrameReleasedError(f"Frame {self.label} released twice")
        self._released = True
        self.image = None

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the full image."""
        shape = None if self.image is None else self.image.shape
        return f"Frame(label={self.label!r}, shape={shape}, released={self._released})"


class FrameBatch:
    """
    Ordered frames collected during one contiguous active window.

    The producer appends while the window is open and seals the batch
    when it hands it to the WindowBuffer; from then on the batch is
    immutable and owned by the buffer until the consumer pops it.

    Attributes:
        stream_name: Stream the frames were captured from
        limit: Maximum number of frames
        frames: Frames in capture order (read-only view)

    Example:
        batch = FrameBatch("garage", limit=5)
        if not batch.append(frame):
            frame.release()  # over the limit, dropped
        batch.seal()
    """

    def __init__(self, stream_name: str, limit: int) -> None:
        if limit < 1:
            raise ValueError("limit must be >= 1")

        self.stream_name = stream_name
        self.limit = limit
        self._frames: List[Frame] = []
        self._sealed: bool = False
        self._released: bool = False

    @property
    def frames(self) -> tuple:
        return tuple(self._frames)

    @property
    def sealed(self) -> bool:
        return self._sealed

    @property
    def released(self) -> bool:
        return self._released

    @property
    def is_full(self) -> bool:
        return len(self._frames) >= self.limit

    def __len__(self) -> int:
        return len(self._frames)

    def __bool__(self) -> bool:
        return bool(self._frames)

    def __iter__(self) -> Iterator[Frame]:
        return iter(self._frames)

    def __getitem__(self, index: int) -> Frame:
        return self._frames[index]

    def append(self, frame: Frame) -> bool:
        """
        Append a frame unless the batch is full.

        Returns:
            True if the frame was taken over by the batch, False if it
            was refused because the limit was reached. A refused frame
            still belongs to the caller.
        """
        if self._sealed:
            raise BatchSealedError(f"Batch of {self.stream_name} is sealed")
        if self.is_full:
            return False
        self._frames.append(frame)
        return True

    def seal(self) -> "FrameBatch":
        """Freeze the batch before handing it over."""
        self._sealed = True
        return self

    def release(self) -> int:
        """
        Release every frame of the batch.

        Idempotent at batch level; each frame is released exactly once.

        Returns:
            Number of frames released by this call.
        """
        if self._released:
            return 0
        self._released = True
        self._sealed = True
        for frame in self._frames:
            frame.release()
        return len(self._frames)

    def __repr__(self) -> str:
        return (
            f"FrameBatch(stream={self.stream_name!r}, frames={len(self._frames)}, "
            f"limit={self.limit}, sealed={self._sealed})"
        )
