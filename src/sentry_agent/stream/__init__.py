"""
Stream Module
=============

Capture, batching and processing pipeline of every stream.

This module provides the core of SentryAgent:
    - Frame / FrameBatch: Captured frames and the windowed batch holding them
    - WindowBuffer: Thread-safe FIFO between producer and consumer
    - StreamSource: Producer loop (capture, window batching)
    - BatchProcessor: Consumer loop (candidate selection, detection, egress)
    - StreamController: Per-stream lifecycle and active flag
    - StreamManager: All controllers, control routing, stop-all

Example:
    from sentry_agent.stream import StreamController, StreamManager

    manager = StreamManager.from_settings(settings, detector, store, notifier)
    manager.start_all()
    manager.dispatch("garage/motionDetector", "activate")
    ...
    manager.stop_all()
"""

from sentry_agent.stream.frame import BatchSealedError, Frame, FrameBatch, FrameReleasedError
from sentry_agent.stream.buffer import WindowBuffer
from sentry_agent.stream.capture import CaptureFactory, CaptureHandle, VideoSource
from sentry_agent.stream.image_encoder import ImageEncodeError, encode_frame_jpeg
from sentry_agent.stream.source import SourceMetrics, StreamSource
from sentry_agent.stream.processor import BatchProcessor, ProcessorMetrics, select_candidate_positions
from sentry_agent.stream.controller import StreamController, StreamState, StreamStateError
from sentry_agent.stream.manager import StreamManager


__all__ = [
    "Frame",
    "FrameBatch",
    "FrameReleasedError",
    "BatchSealedError",
    "WindowBuffer",
    "CaptureHandle",
    "CaptureFactory",
    "VideoSource",
    "ImageEncodeError",
    "encode_frame_jpeg",
    "StreamSource",
    "SourceMetrics",
    "BatchProcessor",
    "ProcessorMetrics",
    "select_candidate_positions",
    "StreamController",
    "StreamState",
    "StreamStateError",
    "StreamManager",
]
