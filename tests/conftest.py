"""
Test Configuration
==================

Pytest fixtures and test doubles for SentryAgent.

The fakes replace the four external collaborators of a stream: the
capture handle, the detector, the image store and the notifier.
"""

import threading
import time
from datetime import datetime
from typing import Dict, List, Optional

import numpy as np
import pytest

from sentry_agent.egress.notifier import NotificationError
from sentry_agent.egress.storage import StorageError
from sentry_agent.models.detection import LabelScore
from sentry_agent.stream.frame import Frame, FrameBatch


FIXED_NOW = datetime(2024, 5, 1, 12, 0, 0)


def make_image(value: int = 0) -> np.ndarray:
    return np.full((8, 8, 3), value, dtype=np.uint8)


def wait_for(predicate, timeout: float = 3.0, interval: float = 0.005) -> bool:
    """Poll predicate until it is true or the timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


def label_encoder(frame: Frame) -> bytes:
    """Encoder that submits the frame label instead of JPEG bytes."""
    frame.require_image()
    return frame.label.encode()


# =============================================================================
# Fakes
# =============================================================================

class FakeCapture:
    """
    Scripted capture handle.

    With frames=None it yields a small image forever; otherwise it yields
    the given items in order (None = failed read) and then fails.
    """

    def __init__(
        self,
        frames: Optional[List[Optional[np.ndarray]]] = None,
        delay: float = 0.001,
        open_ok: bool = True,
        read_error: Optional[Exception] = None,
    ) -> None:
        self._frames = list(frames) if frames is not None else None
        self.delay = delay
        self.open_ok = open_ok
        self.read_error = read_error
        self.opened = 0
        self.released = 0

    def open(self) -> bool:
        self.opened += 1
        return self.open_ok

    def read(self) -> Optional[np.ndarray]:
        if self.delay:
            time.sleep(self.delay)
        if self.read_error is not None:
            raise self.read_error
        if self._frames is None:
            return make_image()
        if not self._frames:
            return None
        return self._frames.pop(0)

    def release(self) -> None:
        self.released += 1


class FakeCaptureFactory:
    """Capture factory handing out FakeCapture instances and recording them."""

    def __init__(self, **capture_kwargs) -> None:
        self.capture_kwargs = capture_kwargs
        self.uris: List[str] = []
        self.captures: List[FakeCapture] = []

    def __call__(self, uri: str) -> FakeCapture:
        self.uris.append(uri)
        capture = FakeCapture(**self.capture_kwargs)
        self.captures.append(capture)
        return capture


class FakeDetector:
    """
    Detector scoring the submitted bytes (frame labels, see label_encoder).

    Attributes:
        scores: Frame label -> 'person' confidence
        fail_on: Frame labels that make score() raise
        calls: Labels scored, in order
    """

    def __init__(
        self,
        scores: Optional[Dict[str, float]] = None,
        fail_on: tuple = (),
        default: float = 0.0,
    ) -> None:
        self.scores = dict(scores or {})
        self.fail_on = set(fail_on)
        self.default = default
        self.calls: List[str] = []

    def score(self, image_bytes: bytes) -> List[LabelScore]:
        label = image_bytes.decode()
        self.calls.append(label)
        if label in self.fail_on:
            raise RuntimeError(f"detector unavailable for {label}")
        confidence = self.scores.get(label, self.default)
        labels = [LabelScore(label="Car", confidence=99.0)]
        if confidence > 0:
            labels.append(LabelScore(label="Person", confidence=confidence))
        return labels


class FakeStore:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.puts: List[tuple] = []
        self._lock = threading.Lock()

    def put(self, key: str, data: bytes, content_type: str = "image/jpeg") -> None:
        if self.fail:
            raise StorageError(f"bucket unavailable for {key}")
        with self._lock:
            self.puts.append((key, data, content_type))

    @property
    def keys(self) -> List[str]:
        return [key for key, _, _ in self.puts]


class FakeNotifier:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent: List[dict] = []

    def notify(
        self,
        subject: str,
        body: str,
        attachment: bytes,
        attachment_name: str,
        storage_key: str,
    ) -> None:
        if self.fail:
            raise NotificationError("mail server down")
        self.sent.append({
            "subject": subject,
            "body": body,
            "attachment": attachment,
            "attachment_name": attachment_name,
            "storage_key": storage_key,
        })


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def make_batch():
    """Build a sealed-ready batch of labelled frames 'cam_0' .. 'cam_{n-1}'."""

    def _make(length: int, name: str = "cam", limit: Optional[int] = None) -> FrameBatch:
        batch = FrameBatch(name, limit or max(length, 1))
        for index in range(length):
            batch.append(Frame(label=f"{name}_{index}", image=make_image(index)))
        return batch

    return _make


@pytest.fixture
def detector():
    return FakeDetector()


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def capture_factory():
    return FakeCaptureFactory()


@pytest.fixture
def stop_event():
    return threading.Event()
