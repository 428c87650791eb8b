"""
MQTT Trigger Listener

Subscribes to ``<topic>/#`` for every configured topic and turns incoming
messages into motion triggers.

paho-mqtt runs its network loop in a background thread. Its on_message
callback only hands (topic, payload) to the asyncio loop through
call_soon_threadsafe; a single consumer task then normalizes and resolves
messages in broker delivery order. Results are logged only; nothing is
published back to the broker.

Uses paho-mqtt 2.0+ with CallbackAPIVersion.VERSION2.
"""
import asyncio
import logging
import ssl
import uuid
from typing import Any, Mapping, Optional, Tuple, Union

import paho.mqtt.client as mqtt

from motion_funnel.core.config import Settings
from motion_funnel.core.logging_config import (
    clear_correlation_id,
    sanitize_log_value,
    set_correlation_id,
)
from motion_funnel.core.metrics import (
    record_trigger_received,
    record_trigger_result,
    update_listener_status,
)
from motion_funnel.schemas.motion import TopicMapping, TriggerOutcome, TriggerResult
from motion_funnel.services.motion_resolver import MotionResolver
from motion_funnel.services.normalizer import MalformedTriggerError, normalize_mqtt

logger = logging.getLogger(__name__)

# Keep-alive interval in seconds
KEEPALIVE_SECONDS = 60

# Buffered messages before new ones are dropped
QUEUE_MAXSIZE = 100


class MQTTTriggerListener:
    """
    MQTT subscription manager for motion triggers.

    Attributes:
        _client: Paho MQTT client instance
        _topics: Topic map (exact topic -> TopicMapping)
        _queue: Messages handed over from the paho thread
        _consumer_task: Task draining _queue into the resolver
        _loop: Event loop the consumer runs on
    """

    name = "mqtt"

    def __init__(
        self,
        settings: Settings,
        topics: Mapping[str, TopicMapping],
        resolver: MotionResolver
    ):
        self._settings = settings
        self._topics = dict(topics)
        self._resolver = resolver
        self._client: Optional[mqtt.Client] = None
        self._connected = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: Optional[asyncio.Queue] = None
        self._consumer_task: Optional[asyncio.Task] = None
        self._last_error: Optional[str] = None

    @property
    def broker(self) -> str:
        return f"{self._settings.MQTT_HOST}:{self._settings.MQTT_PORT}"

    @property
    def is_running(self) -> bool:
        return self._client is not None

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    async def start(self) -> bool:
        """
        Create the client, start its network loop and connect.

        paho keeps reconnecting by itself once the loop runs; subscriptions
        are renewed in on_connect.

        Returns:
            True if the connection attempt was started, False otherwise.
        """
        if self.is_running:
            logger.debug("MQTT trigger listener already running")
            return True

        logger.debug("Setting up MQTT connection for motion detection...")

        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue(maxsize=QUEUE_MAXSIZE)
        self._consumer_task = asyncio.create_task(self._consume(), name="mqtt_trigger_consumer")

        client_id = f"motion-funnel-{uuid.uuid4().hex[:8]}"
        client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=client_id,
            protocol=mqtt.MQTTv311
        )
        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        client.on_message = self._on_message

        if self._settings.MQTT_USERNAME:
            client.username_pw_set(self._settings.MQTT_USERNAME, self._settings.MQTT_PASSWORD)
            logger.debug("MQTT authentication configured")

        if self._settings.MQTT_TLS:
            client.tls_set(cert_reqs=ssl.CERT_REQUIRED)
            logger.debug("MQTT TLS enabled")

        try:
            client.loop_start()
            client.connect_async(
                self._settings.MQTT_HOST,
                self._settings.MQTT_PORT,
                keepalive=KEEPALIVE_SECONDS
            )
        except Exception as e:
            client.loop_stop()
            self._last_error = str(e)
            logger.error(
                f"Can not start the MQTT client for motion detection! {e}",
                extra={"event_type": "mqtt_listener_start_failed", "broker": self.broker, "error": str(e)}
            )
            await self._stop_consumer()
            update_listener_status(self.name, False)
            return False

        self._client = client
        update_listener_status(self.name, True)
        logger.info(
            "MQTT trigger listener started",
            extra={"event_type": "mqtt_listener_started", "broker": self.broker, "client_id": client_id}
        )
        return True

    async def stop(self) -> None:
        """Disconnect from the broker and stop the consumer."""
        client = self._client
        self._client = None

        if client is not None:
            try:
                client.disconnect()
                client.loop_stop()
            except Exception as e:
                logger.warning(f"MQTT client shutdown error: {e}")

        self._connected = False
        await self._stop_consumer()
        update_listener_status(self.name, False)
        logger.info("MQTT client disconnected", extra={"event_type": "mqtt_listener_stopped"})

    async def _stop_consumer(self) -> None:
        if self._consumer_task is not None:
            self._consumer_task.cancel()
            try:
                await self._consumer_task
            except asyncio.CancelledError:
                pass
        self._consumer_task = None
        self._queue = None

    def _on_connect(
        self,
        client: mqtt.Client,
        userdata: Any,
        flags: Any,
        reason_code: mqtt.ReasonCode,
        properties: Any
    ) -> None:
        """Subscribe to every configured topic on each (re)connect."""
        if reason_code == mqtt.CONNACK_ACCEPTED or reason_code.value == 0:
            self._connected = True
            self._last_error = None
            logger.debug("MQTT connected", extra={"event_type": "mqtt_on_connect", "broker": self.broker})

            for topic in self._topics:
                logger.debug(f"Subscribing to MQTT topic: {topic}")
                client.subscribe(f"{topic}/#")
        else:
            self._connected = False
            self._last_error = f"Connection refused: {reason_code}"
            logger.warning(
                "MQTT connection refused",
                extra={"event_type": "mqtt_connection_refused", "reason_code": str(reason_code)}
            )

    def _on_disconnect(
        self,
        client: mqtt.Client,
        userdata: Any,
        disconnect_flags: Any,
        reason_code: mqtt.ReasonCode,
        properties: Any
    ) -> None:
        self._connected = False
        logger.info(
            "MQTT disconnected",
            extra={"event_type": "mqtt_on_disconnect", "reason_code": str(reason_code)}
        )

    def _on_message(self, client: mqtt.Client, userdata: Any, message: mqtt.MQTTMessage) -> None:
        """Runs on the paho thread; hand the message over to the event loop."""
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(self._enqueue, message.topic, bytes(message.payload))

    def _enqueue(self, topic: str, payload: bytes) -> None:
        if self._queue is None:
            return
        try:
            self._queue.put_nowait((topic, payload))
        except asyncio.QueueFull:
            logger.warning(
                f"MQTT trigger queue full ({QUEUE_MAXSIZE}) - dropping message for {topic}",
                extra={"event_type": "mqtt_message_dropped", "topic": sanitize_log_value(topic)}
            )

    async def _consume(self) -> None:
        """Resolve queued messages one at a time, in arrival order."""
        queue = self._queue
        while True:
            item: Tuple[str, bytes] = await queue.get()
            topic, payload = item
            try:
                await self.handle_message(topic, payload)
            finally:
                queue.task_done()

    async def handle_message(self, topic: str, payload: Union[bytes, str]) -> TriggerResult:
        """
        Normalize and resolve one MQTT message.

        No exception escapes; every result is logged.
        """
        token = set_correlation_id(str(uuid.uuid4()))
        record_trigger_received("mqtt")
        camera_name = None

        try:
            trigger = normalize_mqtt(topic, payload, self._topics)
            camera_name = trigger.camera_name
            result = await self._resolver.resolve(trigger)
        except MalformedTriggerError as e:
            result = TriggerResult(error=True, message=e.message, outcome=TriggerOutcome.REJECTED)
        except Exception as e:
            logger.error(
                f"MQTT trigger failed: {e}",
                exc_info=True,
                extra={"event_type": "mqtt_trigger_failed", "topic": sanitize_log_value(topic)}
            )
            result = TriggerResult(error=True, message=str(e), outcome=TriggerOutcome.FAILED)

        try:
            record_trigger_result("mqtt", result.outcome.value)
            logger.debug(
                f"Received a new MQTT message {result.to_response()} ({camera_name})",
                extra={
                    "event_type": "trigger_result",
                    "channel": "mqtt",
                    "topic": sanitize_log_value(topic),
                    "outcome": result.outcome.value,
                }
            )
        finally:
            clear_correlation_id(token)

        return result
