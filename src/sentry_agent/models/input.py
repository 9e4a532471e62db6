"""
Control Message Schema
======================

This module defines the control-plane input of the agent: the action
enum and the Pydantic model for commands that open or close a stream's
active window.

Commands arrive from the MQTT bridge (topic = stream name, payload
"on"/"off") or from the HTTP control endpoint:
    {
        "stream": "garage/motionDetector",
        "action": "activate"
    }

Example:
    from sentry_agent.models.input import ControlCommand

    command = ControlCommand.model_validate_json(raw)
    manager.dispatch(command.stream, command.action)
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ControlAction(str, Enum):
    """Actions accepted by StreamManager.dispatch."""

    ACTIVATE = "activate"
    DEACTIVATE = "deactivate"

    @classmethod
    def from_payload(cls, payload: str, activate_payload: str = "on") -> "ControlAction":
        """
        Map a raw bus payload to an action.

        The activate payload (case-insensitive, surrounding whitespace
        ignored) opens the window; anything else closes it.
        """
        if payload.strip().lower() == activate_payload.strip().lower():
            return cls.ACTIVATE
        return cls.DEACTIVATE


class ControlCommand(BaseModel):
    """
    Schema for a control command addressed to one stream.

    Attributes:
        stream: Stream name (identical to its MQTT topic)
        action: activate or deactivate
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "stream": "garage/motionDetector",
                "action": "activate",
            }
        }
    )

    stream: str = Field(
        ...,
        min_length=1,
        description="Stream name the command is addressed to",
    )

    action: ControlAction = Field(
        ...,
        description="Window action: activate or deactivate",
    )
