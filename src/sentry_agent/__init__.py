"""
SentryAgent
===========

Event-gated person detection over video streams.

Each configured stream is read continuously. While an external control
message holds the stream's window open, frames are collected into
bounded batches; when the window closes the batch is handed to a
consumer that scores a few candidate frames with a label detector,
stores the best "person" frame and sends a notification.

Components:
    - stream: Capture, batching, processing, per-stream lifecycle
    - perception: Label detector backends
    - egress: Image storage and notification
    - control: MQTT control bridge

Example:
    from sentry_agent.config import settings
    from sentry_agent.main import build_manager

    manager = build_manager(settings)
    manager.start_all()
    manager.dispatch("garage/motionDetector", "activate")
"""

__version__ = "0.1.0"
__author__ = "Sentry Project"

__all__ = [
    "__version__",
]
