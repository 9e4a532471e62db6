"""
Data Models
===========

Typed data models for SentryAgent.

Models:
    Input:
        - ControlAction: activate / deactivate
        - ControlCommand: Schema for control commands addressed to a stream

    Detection:
        - StreamIdentity: Stream name and source URI
        - LabelScore: One label returned by the detector
        - DetectionCandidate: Scored frame during batch evaluation
"""

from sentry_agent.models.input import ControlAction, ControlCommand
from sentry_agent.models.detection import DetectionCandidate, LabelScore, StreamIdentity

__all__ = [
    # Input
    "ControlAction",
    "ControlCommand",
    # Detection
    "StreamIdentity",
    "LabelScore",
    "DetectionCandidate",
]
