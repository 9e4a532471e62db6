"""
Detection Engine
================

Detector abstraction consumed by the batch processor.

This module provides the Detector protocol, the MockDetector used for
development and tests, and person_confidence(), the rule that turns a
list of labels into a single match confidence.

Design Rules:
    - Detectors take encoded image bytes, never frames
    - Detectors are synchronous; they run on the consumer thread
    - Confidence is on a 0-100 scale everywhere
"""

import logging
from typing import Iterable, List, Protocol

from sentry_agent.models.detection import LabelScore


logger = logging.getLogger(__name__)


DEFAULT_TARGET_LABEL = "person"
DEFAULT_MIN_CONFIDENCE = 75.0


class Detector(Protocol):
    """
    Protocol for classification backends.

    Implemented by:
        - MockDetector (development, tests)
        - VisionDetector (Google Cloud Vision)
    """

    def score(self, image_bytes: bytes) -> List[LabelScore]:
        """
        Classify an encoded image.

        Args:
            image_bytes: JPEG-encoded image

        Returns:
            Labels with confidences on a 0-100 scale
        """
        ...


def person_confidence(
    labels: Iterable[LabelScore],
    target_label: str = DEFAULT_TARGET_LABEL,
    min_confidence: float = DEFAULT_MIN_CONFIDENCE,
) -> float:
    """
    Reduce detector labels to a single match confidence.

    A label matches when its name equals target_label (case-insensitive)
    and its confidence is at least min_confidence. The highest matching
    confidence wins.

    Returns:
        Best matching confidence, or 0.0 if nothing matched.
    """
    target = target_label.lower()
    best = 0.0
    for item in labels:
        if item.label.lower() == target and item.confidence >= min_confidence:
            if item.confidence > best:
                best = item.confidence
    return best


class MockDetector:
    """
    Deterministic mock detector.

    Reports the same confidence for the target label on every image,
    which makes a whole pipeline reproducible without network access.
    A confidence of 0 reports no labels at all.

    Attributes:
        confidence: Confidence reported for the target label
        target_label: Label name reported
        call_count: Number of score() calls
    """

    def __init__(
        self,
        confidence: float = 0.0,
        target_label: str = DEFAULT_TARGET_LABEL,
    ) -> None:
        self.confidence = confidence
        self.target_label = target_label
        self.call_count: int = 0

        logger.info(
            f"MockDetector initialized: label={target_label}, confidence={confidence}"
        )

    def score(self, image_bytes: bytes) -> List[LabelScore]:
        self.call_count += 1
        if self.confidence <= 0:
            return []
        return [LabelScore(label=self.target_label, confidence=self.confidence)]
