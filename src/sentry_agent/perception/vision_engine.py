"""
Vision Detection Engine
=======================

Production detector using the Google Cloud Vision API.

This engine:
    - Calls Vision label detection on JPEG bytes
    - Converts scores from [0, 1] to the 0-100 scale used by the agent
    - Wraps every API failure in VisionAPIError

Design Rules:
    - Fail fast on misconfiguration
    - Log all API calls
    - Never decide on matches here; person_confidence() does that
"""

import logging
import threading
from typing import List, Optional

from sentry_agent.models.detection import LabelScore


logger = logging.getLogger(__name__)


class VisionAPIError(Exception):
    """Raised when a Vision API call fails."""
    pass


class VisionDetector:
    """
    Detector backed by Google Cloud Vision label detection.

    One client is shared by every stream; the client is thread-safe,
    only the call counters are guarded.

    Attributes:
        max_labels: Maximum labels requested per image
        credentials_path: Path to service account JSON
    """

    def __init__(
        self,
        max_labels: int = 10,
        credentials_path: Optional[str] = None,
    ) -> None:
        """
        Initialize Vision detector.

        Args:
            max_labels: Maximum labels requested per image
            credentials_path: Path to service account JSON (optional)

        Raises:
            VisionAPIError: If the client cannot be created
        """
        self.max_labels = max_labels
        self.credentials_path = credentials_path

        self._api_call_count: int = 0
        self._api_error_count: int = 0
        self._counter_lock = threading.Lock()

        self._client = None
        self._init_client(credentials_path)

        logger.info(f"VisionDetector initialized: max_labels={max_labels}")

    def _init_client(self, credentials_path: Optional[str]) -> None:
        """Initialize Google Cloud Vision client."""
        from google.cloud import vision

        try:
            if credentials_path:
                self._client = vision.ImageAnnotatorClient.from_service_account_json(
                    credentials_path
                )
                logger.info(f"Vision client initialized from: {credentials_path}")
            else:
                # Use default credentials (ADC)
                self._client = vision.ImageAnnotatorClient()
                logger.info("Vision client initialized with default credentials")
        except Exception as e:
            raise VisionAPIError(f"Failed to initialize Vision client: {e}")

    def score(self, image_bytes: bytes) -> List[LabelScore]:
        """
        Run label detection on an encoded image.

        Args:
            image_bytes: JPEG-encoded image

        Returns:
            Labels with confidences on a 0-100 scale

        Raises:
            VisionAPIError: If the request fails or the API reports an error
        """
        from google.cloud import vision

        image = vision.Image(content=image_bytes)

        try:
            response = self._client.label_detection(
                image=image,
                max_results=self.max_labels,
            )
        except Exception as e:
            self._count(error=True)
            raise VisionAPIError(f"Vision API request failed: {e}")

        if response.error.message:
            self._count(error=True)
            raise VisionAPIError(f"Vision API: {response.error.message}")

        self._count(error=False)

        labels = [
            LabelScore(label=annotation.description, confidence=annotation.score * 100.0)
            for annotation in response.label_annotations
        ]
        logger.debug(
            f"Vision API: {len(image_bytes)} bytes, labels="
            f"{[(l.label, round(l.confidence, 1)) for l in labels]}"
        )
        return labels

    def _count(self, error: bool) -> None:
        with self._counter_lock:
            self._api_call_count += 1
            if error:
                self._api_error_count += 1

    @property
    def api_call_count(self) -> int:
        """Total API calls made."""
        return self._api_call_count

    @property
    def api_error_count(self) -> int:
        """Total API errors."""
        return self._api_error_count

    def get_metrics(self) -> dict:
        """Get detector metrics for observability."""
        return {
            "api_call_count": self._api_call_count,
            "api_error_count": self._api_error_count,
            "max_labels": self.max_labels,
        }
