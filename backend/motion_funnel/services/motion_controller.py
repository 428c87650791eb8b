"""
Motion Controller

Owns the debounce resolver and the three trigger listeners. Built once in
the application lifespan and passed to the API through app.state.

Each listener starts and stops independently; stopping one leaves the
others and the resolver's debounce state untouched.
"""
import logging
from typing import Dict, List, Optional, Union

from motion_funnel.core.config import InterfaceConfig, Settings
from motion_funnel.schemas.motion import ListenerStatus
from motion_funnel.services.camera_registry import CameraRegistry
from motion_funnel.services.event_sink import EventSink
from motion_funnel.services.http_listener import HTTPTriggerListener
from motion_funnel.services.motion_resolver import MotionResolver
from motion_funnel.services.mqtt_listener import MQTTTriggerListener
from motion_funnel.services.presence_service import PresenceStore
from motion_funnel.services.smtp_listener import SMTPTriggerListener

logger = logging.getLogger(__name__)

Listener = Union[HTTPTriggerListener, MQTTTriggerListener, SMTPTriggerListener]

LISTENER_NAMES = ("http", "mqtt", "smtp")


class UnknownListenerError(KeyError):
    """No listener with the given name."""


class MotionController:
    """
    Wires registry, presence store and sink into a resolver and its listeners.

    Usage:
        controller = MotionController(settings, interface_config, presence_store, sink)
        await controller.start()   # enabled listeners only
        ...
        await controller.stop()
    """

    def __init__(
        self,
        settings: Settings,
        interface_config: InterfaceConfig,
        presence: PresenceStore,
        sink: EventSink
    ):
        self.settings = settings
        self.sink = sink
        self.registry = CameraRegistry(interface_config.cameras)
        self.resolver = MotionResolver(self.registry, presence, sink)

        self.http_listener = HTTPTriggerListener(
            self.resolver,
            port=settings.HTTP_PORT,
            localhost_only=settings.HTTP_LOCALHOST_ONLY,
        )
        self.mqtt_listener = MQTTTriggerListener(settings, interface_config.topics, self.resolver)
        self.smtp_listener = SMTPTriggerListener(
            port=settings.SMTP_PORT,
            http_port=settings.smtp_loopback_port,
            space_replace=settings.SMTP_SPACE_REPLACE,
            hostname=settings.SMTP_HOSTNAME,
        )

        self._listeners: Dict[str, Listener] = {
            "http": self.http_listener,
            "mqtt": self.mqtt_listener,
            "smtp": self.smtp_listener,
        }
        self._enabled: Dict[str, bool] = {
            "http": settings.HTTP_ENABLED,
            "mqtt": settings.MQTT_ENABLED,
            "smtp": settings.SMTP_ENABLED,
        }

    def get_listener(self, name: str) -> Listener:
        try:
            return self._listeners[name]
        except KeyError:
            raise UnknownListenerError(name) from None

    async def start(self) -> Dict[str, bool]:
        """
        Start every enabled listener.

        A listener that fails to start is logged and skipped; the others
        still start.

        Returns:
            Mapping of started listener name -> success.
        """
        started: Dict[str, bool] = {}
        for name in LISTENER_NAMES:
            if self._enabled[name]:
                started[name] = await self.start_listener(name)

        logger.info(
            "Motion listeners started",
            extra={"event_type": "motion_listeners_started", "listeners": started, "cameras": self.registry.names()}
        )
        return started

    async def stop(self) -> None:
        """Stop all listeners, cancel debounce timers and close the sink."""
        # SMTP first: its pending loopback calls still need the HTTP listener
        for name in reversed(LISTENER_NAMES):
            await self.stop_listener(name)
        await self.resolver.shutdown()
        await self.sink.close()

    async def start_listener(self, name: str) -> bool:
        listener = self.get_listener(name)
        try:
            return await listener.start()
        except Exception as e:
            logger.error(
                f"Can not start the {name.upper()} listener for motion detection: {e}",
                exc_info=True,
                extra={"event_type": "listener_start_failed", "listener": name}
            )
            return False

    async def stop_listener(self, name: str) -> None:
        listener = self.get_listener(name)
        if not listener.is_running:
            return
        try:
            await listener.stop()
        except Exception as e:
            logger.error(
                f"Error stopping the {name.upper()} listener: {e}",
                exc_info=True,
                extra={"event_type": "listener_stop_failed", "listener": name}
            )

    def get_status(self) -> List[ListenerStatus]:
        statuses = []
        for name in LISTENER_NAMES:
            listener = self._listeners[name]
            detail: Optional[str] = listener.last_error
            if name == "mqtt" and listener.is_running:
                detail = detail or ("connected" if self.mqtt_listener.is_connected else "connecting")
            statuses.append(ListenerStatus(
                name=name,
                enabled=self._enabled[name],
                running=listener.is_running,
                detail=detail,
            ))
        return statuses
