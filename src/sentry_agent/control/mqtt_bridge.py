"""
MQTT Control Bridge
===================

Delivers activate/deactivate commands from an MQTT broker to the
StreamManager.

Each stream name is also its MQTT topic. A message whose payload is
the activate payload ("on" by default) opens the stream's window; any
other payload closes it.

This bridge:
    - Subscribes to every stream topic on (re)connect, QoS 0
    - Translates payloads into ControlAction
    - Calls StreamManager.dispatch (its only entry point into the core)

Design Rules:
    - Runs on paho-mqtt's network thread (loop_start)
    - Never raises out of a callback
    - Disabled, not failing, when no broker host is configured
"""

import logging
from typing import List, Optional

import paho.mqtt.client as mqtt

from sentry_agent.models.input import ControlAction
from sentry_agent.stream.manager import StreamManager


logger = logging.getLogger(__name__)


class MqttControlBridge:
    """
    paho-mqtt client routing topic messages to StreamManager.dispatch.

    Attributes:
        host: Broker host
        port: Broker port
        topics: Subscribed topics (one per stream)
        connected: Whether the client is connected

    Example:
        bridge = MqttControlBridge(manager, host="broker.local")
        bridge.start()
        ...
        bridge.stop()
    """

    def __init__(
        self,
        manager: StreamManager,
        host: str,
        port: int = 1883,
        username: Optional[str] = None,
        password: Optional[str] = None,
        client_id: str = "",
        keepalive: int = 60,
        activate_payload: str = "on",
        topics: Optional[List[str]] = None,
    ) -> None:
        self.host = host
        self.port = port
        self.keepalive = keepalive
        self.activate_payload = activate_payload
        self.topics = list(topics) if topics is not None else manager.names

        self._manager = manager
        self._connected: bool = False
        self.messages_received: int = 0

        self._client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=client_id,
        )
        if username:
            self._client.username_pw_set(username, password)
        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect
        self._client.on_subscribe = self._on_subscribe
        self._client.on_message = self._on_message

    @property
    def connected(self) -> bool:
        return self._connected

    def start(self) -> None:
        """Connect asynchronously and start the network thread."""
        logger.info(f"Connecting to MQTT broker {self.host}:{self.port}")
        self._client.connect_async(self.host, self.port, keepalive=self.keepalive)
        self._client.loop_start()

    def stop(self) -> None:
        """Disconnect and stop the network thread."""
        logger.info("Stopping MQTT control bridge")
        self._client.disconnect()
        self._client.loop_stop()
        self._connected = False

    def handle_message(self, topic: str, payload: bytes) -> bool:
        """
        Route one message to the manager.

        Returns:
            True if the command reached a stream.
        """
        self.messages_received += 1
        text = payload.decode("utf-8", errors="replace")
        action = ControlAction.from_payload(text, self.activate_payload)
        logger.info(f"Received message: {text!r} topic: {topic} -> {action.value}")
        return self._manager.dispatch(topic, action)

    # -------------------------------------------------------------------------
    # paho callbacks
    # -------------------------------------------------------------------------

    def _on_connect(self, client, userdata, flags, reason_code, properties) -> None:
        if reason_code.is_failure:
            logger.error(f"MQTT connect result: {reason_code}")
            return

        self._connected = True
        logger.info(f"MQTT connect result: {reason_code}")
        if not self.topics:
            logger.warning("No stream topics to subscribe to")
            return
        logger.info("Subscribing to topics...")
        client.subscribe([(topic, 0) for topic in self.topics])

    def _on_disconnect(self, client, userdata, flags, reason_code, properties) -> None:
        self._connected = False
        logger.warning(f"Disconnected from MQTT broker: {reason_code}")

    def _on_subscribe(self, client, userdata, mid, reason_codes, properties) -> None:
        for topic, code in zip(self.topics, reason_codes):
            if code.is_failure:
                logger.error(f"Failed to subscribe to topic '{topic}': {code}")
            else:
                logger.info(f"Subscribed to topic '{topic}' ({code})")

    def _on_message(self, client, userdata, message) -> None:
        try:
            self.handle_message(message.topic, message.payload)
        except Exception as e:
            logger.error(f"Failed to handle MQTT message on {message.topic}: {e}")
