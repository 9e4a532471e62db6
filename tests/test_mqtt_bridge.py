"""
MQTT Bridge Tests
=================

Tests for payload translation and topic routing. No broker is
contacted: paho callbacks are invoked directly.
"""

from types import SimpleNamespace

import pytest

from sentry_agent.control.mqtt_bridge import MqttControlBridge
from sentry_agent.models.input import ControlAction


class RecordingManager:
    def __init__(self, names):
        self.names = list(names)
        self.dispatched = []
        self.fail = False

    def dispatch(self, name, action):
        if self.fail:
            raise RuntimeError("dispatch exploded")
        self.dispatched.append((name, action))
        return name in self.names


class RecordingClient:
    def __init__(self):
        self.subscriptions = []

    def subscribe(self, topics):
        self.subscriptions.append(topics)


@pytest.fixture
def manager():
    return RecordingManager(["garage/motionDetector", "yard/gate"])


@pytest.fixture
def bridge(manager):
    return MqttControlBridge(manager, host="broker.local")


class TestControlAction:
    """Tests for ControlAction.from_payload."""

    @pytest.mark.parametrize("payload", ["on", "ON", " on\n"])
    def test_activate_payloads(self, payload):
        assert ControlAction.from_payload(payload) is ControlAction.ACTIVATE

    @pytest.mark.parametrize("payload", ["off", "", "1", "true", "onn"])
    def test_everything_else_deactivates(self, payload):
        assert ControlAction.from_payload(payload) is ControlAction.DEACTIVATE

    def test_custom_activate_payload(self):
        assert ControlAction.from_payload("motion", "motion") is ControlAction.ACTIVATE
        assert ControlAction.from_payload("on", "motion") is ControlAction.DEACTIVATE


class TestMqttControlBridge:
    """Tests for MqttControlBridge."""

    def test_topics_default_to_stream_names(self, bridge):
        assert bridge.topics == ["garage/motionDetector", "yard/gate"]

    def test_on_payload_activates_topic_stream(self, bridge, manager):
        assert bridge.handle_message("garage/motionDetector", b"on")
        assert manager.dispatched == [("garage/motionDetector", ControlAction.ACTIVATE)]

    def test_other_payload_deactivates(self, bridge, manager):
        bridge.handle_message("yard/gate", b"off")
        assert manager.dispatched == [("yard/gate", ControlAction.DEACTIVATE)]

    def test_unknown_topic_reaches_manager_and_is_ignored(self, bridge, manager):
        assert not bridge.handle_message("attic/window", b"on")
        assert bridge.messages_received == 1

    def test_callback_never_raises(self, bridge, manager):
        manager.fail = True
        message = SimpleNamespace(topic="yard/gate", payload=b"on")

        bridge._on_message(None, None, message)

        assert bridge.messages_received == 1

    def test_connect_subscribes_every_topic(self, bridge):
        client = RecordingClient()

        bridge._on_connect(client, None, None, SimpleNamespace(is_failure=False), None)

        assert bridge.connected
        assert client.subscriptions == [[("garage/motionDetector", 0), ("yard/gate", 0)]]

    def test_failed_connect_does_not_subscribe(self, bridge):
        client = RecordingClient()

        bridge._on_connect(client, None, None, SimpleNamespace(is_failure=True), None)

        assert not bridge.connected
        assert client.subscriptions == []

    def test_disconnect_clears_connected(self, bridge):
        bridge._on_connect(RecordingClient(), None, None, SimpleNamespace(is_failure=False), None)
        bridge._on_disconnect(None, None, None, SimpleNamespace(is_failure=True), None)

        assert not bridge.connected
