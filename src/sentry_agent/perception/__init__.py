"""
Perception Module
=================

Detector backends that score candidate frames.

This module provides a black-box abstraction for classification.
The batch processor consumes ONLY label scores, never service internals.

Components:
    - Detector: Protocol for classification backends
    - MockDetector: Deterministic mock for testing
    - VisionDetector: Google Cloud Vision API (production)
    - person_confidence: Reduces labels to a match confidence
"""

from sentry_agent.perception.engine import (
    DEFAULT_MIN_CONFIDENCE,
    DEFAULT_TARGET_LABEL,
    Detector,
    MockDetector,
    person_confidence,
)
from sentry_agent.perception.vision_engine import VisionAPIError, VisionDetector

__all__ = [
    "Detector",
    "MockDetector",
    "VisionDetector",
    "VisionAPIError",
    "person_confidence",
    "DEFAULT_TARGET_LABEL",
    "DEFAULT_MIN_CONFIDENCE",
]
