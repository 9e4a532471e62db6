"""
Video Capture
=============

Thin wrapper over cv2.VideoCapture used by the producer loop.

The producer only needs three operations: open the source, read one
frame, release the handle. Anything that implements them can be passed
to StreamSource through a capture factory (tests use scripted fakes).

Design Rules:
    - read() never raises for a transport failure; it returns None
    - An empty frame counts as a failed read
    - release() is safe to call more than once
"""

import logging
from typing import Callable, Optional, Protocol

import cv2
import numpy as np


logger = logging.getLogger(__name__)


class CaptureHandle(Protocol):
    """Protocol for frame sources consumed by StreamSource."""

    def open(self) -> bool:
        ...

    def read(self) -> Optional[np.ndarray]:
        ...

    def release(self) -> None:
        ...


CaptureFactory = Callable[[str], CaptureHandle]


class VideoSource:
    """
    OpenCV capture handle for an RTSP URL, video file or device index.

    Attributes:
        source_uri: URI given to cv2.VideoCapture. A purely numeric
            value is treated as a local device index.
    """

    def __init__(self, source_uri: str, api_preference: int = cv2.CAP_ANY) -> None:
        self.source_uri = source_uri
        self.api_preference = api_preference
        self._cap: Optional[cv2.VideoCapture] = None

    @property
    def is_opened(self) -> bool:
        return self._cap is not None and self._cap.isOpened()

    def open(self) -> bool:
        """(Re)open the source. Returns True on success."""
        self.release()
        source = int(self.source_uri) if self.source_uri.isdigit() else self.source_uri
        self._cap = cv2.VideoCapture(source, self.api_preference)
        if not self._cap.isOpened():
            logger.warning(f"Could not open capture source {self._redacted_uri()}")
            return False
        return True

    def read(self) -> Optional[np.ndarray]:
        """
        Read the next frame.

        Returns:
            BGR frame, or None if the read failed or the frame is empty.
        """
        if self._cap is None:
            return None
        ok, frame = self._cap.read()
        if not ok or frame is None or frame.size == 0:
            return None
        return frame

    def release(self) -> None:
        """Release the underlying handle."""
        if self._cap is not None:
            self._cap.release()
            self._cap = None

    def _redacted_uri(self) -> str:
        """URI without credentials, for logging."""
        scheme, sep, rest = self.source_uri.partition("://")
        if sep and "@" in rest:
            return f"{scheme}://***@{rest.split('@', 1)[1]}"
        return self.source_uri
