"""
Tests for the MQTT trigger listener

Tests cover:
- Client setup, connect and disconnect
- Subscriptions renewed on every connect
- Handing messages from the paho thread to the event loop
- Ordered processing of queued messages
- Result mapping for valid, malformed and failing messages
"""
import asyncio
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from motion_funnel.schemas.motion import TriggerOutcome
from motion_funnel.services.mqtt_listener import (
    KEEPALIVE_SECONDS,
    MQTTTriggerListener,
)


@pytest.fixture
def listener(test_settings, topics, resolver):
    return MQTTTriggerListener(test_settings, topics, resolver)


class TestMQTTListenerLifecycle:
    """Tests for starting and stopping the MQTT client."""

    def test_init_state(self, listener):
        """Listener starts without client or connection."""
        assert listener._client is None
        assert listener.is_running is False
        assert listener.is_connected is False
        assert listener.broker == "localhost:1883"

    @pytest.mark.asyncio
    async def test_start_connects_asynchronously(self, listener):
        """start() runs the network loop and connects in the background."""
        with patch("motion_funnel.services.mqtt_listener.mqtt.Client") as mock_client_class:
            mock_client = MagicMock()
            mock_client_class.return_value = mock_client

            result = await listener.start()

            assert result is True
            assert listener.is_running is True
            mock_client.loop_start.assert_called_once()
            mock_client.connect_async.assert_called_once_with(
                "localhost", 1883, keepalive=KEEPALIVE_SECONDS
            )
            mock_client.username_pw_set.assert_not_called()
            mock_client.tls_set.assert_not_called()

            await listener.stop()

            mock_client.disconnect.assert_called_once()
            mock_client.loop_stop.assert_called()
            assert listener.is_running is False
            assert listener._consumer_task is None

    @pytest.mark.asyncio
    async def test_start_with_credentials_and_tls(self, test_settings, topics, resolver):
        """Credentials and TLS are applied before connecting."""
        test_settings.MQTT_USERNAME = "camera"
        test_settings.MQTT_PASSWORD = "secret"
        test_settings.MQTT_TLS = True
        listener = MQTTTriggerListener(test_settings, topics, resolver)

        with patch("motion_funnel.services.mqtt_listener.mqtt.Client") as mock_client_class:
            mock_client = MagicMock()
            mock_client_class.return_value = mock_client

            await listener.start()

            mock_client.username_pw_set.assert_called_once_with("camera", "secret")
            mock_client.tls_set.assert_called_once()

            await listener.stop()

    @pytest.mark.asyncio
    async def test_start_failure_returns_false(self, listener):
        """A failing connect is reported and leaves the listener stopped."""
        with patch("motion_funnel.services.mqtt_listener.mqtt.Client") as mock_client_class:
            mock_client = MagicMock()
            mock_client.connect_async.side_effect = OSError("Name or service not known")
            mock_client_class.return_value = mock_client

            result = await listener.start()

            assert result is False
            assert listener.is_running is False
            assert listener.last_error == "Name or service not known"
            mock_client.loop_stop.assert_called_once()
            assert listener._consumer_task is None

    @pytest.mark.asyncio
    async def test_start_twice_keeps_client(self, listener):
        with patch("motion_funnel.services.mqtt_listener.mqtt.Client") as mock_client_class:
            mock_client_class.return_value = MagicMock()

            await listener.start()
            client = listener._client
            assert await listener.start() is True
            assert listener._client is client
            assert mock_client_class.call_count == 1

            await listener.stop()


class TestMQTTListenerCallbacks:
    """Tests for paho callbacks."""

    def test_on_connect_subscribes_all_topics(self, listener):
        """Every configured topic is subscribed with a trailing wildcard."""
        client = MagicMock()

        listener._on_connect(client, None, None, MagicMock(value=0), None)

        assert listener.is_connected is True
        subscribed = [call.args[0] for call in client.subscribe.call_args_list]
        assert sorted(subscribed) == ["cam/Garage/#", "cam/Garage/reset/#", "cam/Porch/bell/#"]

    def test_on_connect_refused(self, listener):
        client = MagicMock()

        listener._on_connect(client, None, None, MagicMock(value=5), None)

        assert listener.is_connected is False
        assert listener.last_error.startswith("Connection refused")
        client.subscribe.assert_not_called()

    def test_reconnect_subscribes_again(self, listener):
        client = MagicMock()

        listener._on_connect(client, None, None, MagicMock(value=0), None)
        listener._on_disconnect(client, None, None, MagicMock(value=7), None)
        assert listener.is_connected is False

        listener._on_connect(client, None, None, MagicMock(value=0), None)
        assert client.subscribe.call_count == 6

    @pytest.mark.asyncio
    async def test_on_message_hands_over_to_loop(self, listener):
        """on_message only schedules the message on the event loop."""
        listener._loop = asyncio.get_running_loop()
        listener._queue = asyncio.Queue()
        message = MagicMock(topic="cam/Garage", payload=b"ON")

        listener._on_message(None, None, message)
        assert listener._queue.empty()

        await asyncio.sleep(0)
        assert listener._queue.get_nowait() == ("cam/Garage", b"ON")

    def test_on_message_without_loop_is_ignored(self, listener):
        listener._on_message(None, None, MagicMock(topic="cam/Garage", payload=b"ON"))

    @pytest.mark.asyncio
    async def test_full_queue_drops_message(self, listener):
        listener._queue = asyncio.Queue(maxsize=1)

        listener._enqueue("cam/Garage", b"ON")
        listener._enqueue("cam/Garage", b"OFF")

        assert listener._queue.qsize() == 1
        assert listener._queue.get_nowait() == ("cam/Garage", b"ON")


class TestMQTTMessageHandling:
    """Tests for normalizing and resolving MQTT messages."""

    @pytest.mark.asyncio
    async def test_motion_message_is_forwarded(self, listener, resolver, sink):
        result = await listener.handle_message("cam/Garage", b"ON")

        assert result.error is False
        assert result.outcome == TriggerOutcome.FORWARDED
        assert sink.events == [("motion", "Garage", True)]

        await resolver.shutdown()

    @pytest.mark.asyncio
    async def test_reset_topic(self, listener, resolver, sink):
        await listener.handle_message("cam/Garage", b"ON")

        result = await listener.handle_message("cam/Garage/reset", b"OFF")

        assert result.outcome == TriggerOutcome.RESET
        assert sink.events == [("motion", "Garage", True), ("motion", "Garage", False)]

    @pytest.mark.asyncio
    async def test_doorbell_topic(self, listener, sink):
        result = await listener.handle_message("cam/Porch/bell", b"pressed")

        assert result.error is False
        assert sink.events == [("doorbell", "Porch", True)]

    @pytest.mark.asyncio
    async def test_unmapped_topic_is_rejected(self, listener, sink):
        result = await listener.handle_message("cam/Shed", b"ON")

        assert result.error is True
        assert result.outcome == TriggerOutcome.REJECTED
        assert result.message == "Can not assign the MQTT topic (cam/Shed) to a camera!"
        assert sink.events == []

    @pytest.mark.asyncio
    async def test_unexpected_payload_is_rejected(self, listener, sink):
        result = await listener.handle_message("cam/Garage", b"MAYBE")

        assert result.error is True
        assert result.outcome == TriggerOutcome.REJECTED
        assert sink.events == []

    @pytest.mark.asyncio
    async def test_resolver_failure_does_not_escape(self, test_settings, topics):
        resolver = MagicMock()
        resolver.resolve = AsyncMock(side_effect=RuntimeError("boom"))
        listener = MQTTTriggerListener(test_settings, topics, resolver)

        result = await listener.handle_message("cam/Garage", b"ON")

        assert result.error is True
        assert result.outcome == TriggerOutcome.FAILED
        assert result.message == "boom"

    @pytest.mark.asyncio
    async def test_consumer_processes_in_arrival_order(self, listener, resolver, sink):
        """Queued messages for one camera are resolved in delivery order."""
        with patch("motion_funnel.services.mqtt_listener.mqtt.Client") as mock_client_class:
            mock_client_class.return_value = MagicMock()
            await listener.start()

            listener._enqueue("cam/Garage", b"ON")
            listener._enqueue("cam/Garage", b"ON")
            listener._enqueue("cam/Garage", b"OFF")
            listener._enqueue("cam/Garage", b"ON")
            await asyncio.wait_for(listener._queue.join(), timeout=2)

            assert sink.events == [
                ("motion", "Garage", True),
                ("motion", "Garage", False),
                ("motion", "Garage", True),
            ]
            assert resolver.is_armed("Garage")

            await listener.stop()
            await resolver.shutdown()
