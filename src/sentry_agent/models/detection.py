"""
Detection Models
================

Data models passed between the detector, the batch processor and the
egress collaborators.

    - StreamIdentity: name and source URI of one stream
    - LabelScore: one label returned by the classification service
    - DetectionCandidate: a scored frame, local to one batch evaluation
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from sentry_agent.stream.frame import Frame


@dataclass(frozen=True, slots=True)
class StreamIdentity:
    """
    Identity of a stream, immutable for the lifetime of its controller.

    Attributes:
        name: Stream name, also the control topic (e.g. "garage/motionDetector")
        source_uri: Capture URI (RTSP URL, file path or device index)
    """

    name: str
    source_uri: str

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("stream name must not be empty")

    @property
    def sanitized_name(self) -> str:
        """Name usable as a storage key prefix ('/' replaced by '_')."""
        return self.name.replace("/", "_")


@dataclass(frozen=True, slots=True)
class LabelScore:
    """
    One label from the classification service.

    Attributes:
        label: Label name as returned by the service
        confidence: Confidence on a 0-100 scale
    """

    label: str
    confidence: float


@dataclass(slots=True)
class DetectionCandidate:
    """
    Frame selected from a batch and scored by the detector.

    Never persisted; exists only while one batch is evaluated.

    Attributes:
        frame: The candidate frame (still owned by its batch)
        confidence: Best matching confidence for the target label (0 = none)
        position_index: Index of the frame inside its batch
        image_bytes: Encoded image that was submitted to the detector
    """

    frame: "Frame"
    confidence: float
    position_index: int
    image_bytes: bytes

    def __repr__(self) -> str:
        return (
            f"DetectionCandidate(label={self.frame.label!r}, "
            f"confidence={self.confidence:.2f}, "
            f"position={self.position_index})"
        )
