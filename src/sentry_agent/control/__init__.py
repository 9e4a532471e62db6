"""
Control Module
==============

Control-plane ingress: delivers activate/deactivate commands from the
message bus to StreamManager.dispatch.
"""

from sentry_agent.control.mqtt_bridge import MqttControlBridge

__all__ = [
    "MqttControlBridge",
]
