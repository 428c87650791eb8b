"""
Motion Resolver

Per-camera debounce state machine. Given a normalized trigger it decides
whether the trigger is suppressed, forwarded, or forwarded as a reset.

States per camera:
    IDLE   - no timer
    ARMED  - timer running for camera.motion_timeout seconds

Resolution order:
    1. Unknown camera                      -> error "Camera '<name>' not found"
    2. At home and camera not excluded     -> suppressed, nothing changes
    3. Broadcast listeners are notified    (always, independent of debounce)
    4. recordOnMovement disabled           -> done, nothing forwarded
    5. ARMED + state True                  -> suppressed, timer untouched
       ARMED + state False                 -> timer cleared, reset forwarded
       IDLE                                -> forwarded; state True with a
                                              positive timeout arms the timer

Timer expiry only returns the camera to IDLE; nothing is forwarded.

All resolutions for one camera run under a per-camera asyncio.Lock, so the
presence lookup (which suspends) cannot let two triggers both observe IDLE.
"""
import asyncio
import logging
from typing import Callable, Dict, List

from motion_funnel.core.metrics import (
    record_event_forwarded,
    record_trigger_received,
    record_trigger_result,
    set_debounce_armed,
)
from motion_funnel.schemas.motion import (
    CameraConfig,
    MotionTrigger,
    TriggerOutcome,
    TriggerResult,
)
from motion_funnel.services.camera_registry import CameraRegistry
from motion_funnel.services.event_sink import EventSink
from motion_funnel.services.normalizer import TRIGGER_CUSTOM
from motion_funnel.services.presence_service import PresenceStore

logger = logging.getLogger(__name__)

MESSAGE_EXTERN = "Handled through extern controller"
MESSAGE_INTERN = "Handled through intern controller"
MESSAGE_TIMEOUT_ACTIVE = "Skip motion event, timeout active!"

MotionListener = Callable[[MotionTrigger], None]


class MotionResolver:
    """
    Debounce resolver shared by all trigger listeners.

    The timer map is the only mutable shared state; it is never touched
    outside this class.

    Usage:
        resolver = MotionResolver(registry, presence_store, sink)
        result = await resolver.handle_motion("motion", "Garage", True, channel="http")
    """

    def __init__(self, registry: CameraRegistry, presence: PresenceStore, sink: EventSink):
        self._registry = registry
        self._presence = presence
        self._sink = sink
        self._timers: Dict[str, asyncio.Task] = {}  # camera name -> timeout task
        self._locks: Dict[str, asyncio.Lock] = {}  # camera name -> resolution lock
        self._listeners: List[MotionListener] = []

    def add_listener(self, callback: MotionListener) -> None:
        """Register a callback for every trigger that passes the presence policy."""
        self._listeners.append(callback)

    def is_armed(self, camera_name: str) -> bool:
        return camera_name in self._timers

    def armed_cameras(self) -> List[str]:
        return sorted(self._timers)

    async def handle_motion(
        self,
        trigger_type: str,
        camera_name: str,
        state: bool,
        channel: str = "http"
    ) -> TriggerResult:
        """
        Resolve a normalized trigger.

        Args:
            trigger_type: "motion", "doorbell" or "custom"
            camera_name: Camera the trigger is for
            state: True for motion/doorbell, False for a reset
            channel: Ingress channel, for logs and broadcast listeners

        Returns:
            TriggerResult describing what happened.
        """
        camera = self._registry.get(camera_name)
        if camera is None:
            return TriggerResult(
                error=True,
                message=f"Camera '{camera_name}' not found",
                outcome=TriggerOutcome.NOT_FOUND,
            )

        trigger = MotionTrigger(
            trigger_type=trigger_type,
            camera_name=camera.name,
            state=state,
            channel=channel,
        )

        async with self._lock_for(camera.name):
            return await self._resolve(camera, trigger)

    async def resolve(self, trigger: MotionTrigger) -> TriggerResult:
        """Resolve an already built MotionTrigger."""
        return await self.handle_motion(
            trigger.trigger_type,
            trigger.camera_name,
            trigger.state,
            channel=trigger.channel,
        )

    async def trigger_custom(self, camera_name: str, state: bool) -> TriggerResult:
        """
        Resolve a custom trigger raised from inside the application.

        Exceptions from the event sink are logged and reported as a failed
        result, as for any other channel.
        """
        record_trigger_received("extern")
        try:
            result = await self.handle_motion(TRIGGER_CUSTOM, camera_name, state, channel="extern")
        except Exception as e:
            logger.error(
                f"Custom trigger for {camera_name} failed: {e}",
                exc_info=True,
                extra={"event_type": "custom_trigger_failed", "camera_name": camera_name}
            )
            result = TriggerResult(error=True, message=str(e), outcome=TriggerOutcome.FAILED)

        record_trigger_result("extern", result.outcome.value)
        logger.debug(
            f"Received a new EXTERN message {result.to_response()} ({camera_name})",
            extra={"event_type": "trigger_result", "channel": "extern", "outcome": result.outcome.value}
        )
        return result

    async def _resolve(self, camera: CameraConfig, trigger: MotionTrigger) -> TriggerResult:
        presence = await self._presence.get_presence()
        if presence.suppresses(camera.name):
            return TriggerResult(
                error=False,
                message=f"Skip motion trigger. At Home is active and {camera.name} is not excluded!",
                outcome=TriggerOutcome.SUPPRESSED_PRESENCE,
            )

        self._notify_listeners(trigger)

        if not camera.record_on_movement:
            return TriggerResult(
                error=False,
                message=MESSAGE_EXTERN,
                outcome=TriggerOutcome.NOTIFIED,
            )

        if self.is_armed(camera.name):
            if trigger.state:
                logger.debug(
                    f"Skip motion event for {camera.name}, timeout active",
                    extra={"event_type": "debounce_suppressed", "camera_name": camera.name}
                )
                return TriggerResult(
                    error=False,
                    message=MESSAGE_TIMEOUT_ACTIVE,
                    outcome=TriggerOutcome.SUPPRESSED_DEBOUNCE,
                )

            self._cancel_timer(camera.name)
            await self._forward(trigger)
            return TriggerResult(error=False, message=MESSAGE_INTERN, outcome=TriggerOutcome.RESET)

        await self._forward(trigger)

        # Armed only once the sink accepted the event; a failed forward leaves IDLE
        if trigger.state and camera.motion_timeout > 0:
            self._start_timer(camera)

        return TriggerResult(error=False, message=MESSAGE_INTERN, outcome=TriggerOutcome.FORWARDED)

    async def _forward(self, trigger: MotionTrigger) -> None:
        await self._sink.handle(trigger.trigger_type, trigger.camera_name, trigger.state)
        record_event_forwarded(trigger.trigger_type, trigger.state)
        logger.info(
            f"Motion event forwarded for {trigger.camera_name}",
            extra={
                "event_type": "motion_forwarded",
                "camera_name": trigger.camera_name,
                "trigger_type": trigger.trigger_type,
                "state": trigger.state,
                "channel": trigger.channel,
            }
        )

    def _notify_listeners(self, trigger: MotionTrigger) -> None:
        for callback in list(self._listeners):
            try:
                callback(trigger)
            except Exception as e:
                logger.error(
                    f"Motion listener failed: {e}",
                    exc_info=True,
                    extra={"event_type": "motion_listener_failed", "camera_name": trigger.camera_name}
                )

    def _lock_for(self, camera_name: str) -> asyncio.Lock:
        lock = self._locks.get(camera_name)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[camera_name] = lock
        return lock

    def _start_timer(self, camera: CameraConfig) -> None:
        """Arm the debounce timer for a camera."""
        loop = asyncio.get_running_loop()
        task = loop.create_task(
            self._timeout_coroutine(camera.name, camera.motion_timeout),
            name=f"motion_timeout_{camera.name}"
        )
        self._timers[camera.name] = task
        set_debounce_armed(len(self._timers))
        logger.debug(
            f"Motion timeout armed for {camera.name} ({camera.motion_timeout}s)",
            extra={"event_type": "debounce_armed", "camera_name": camera.name, "timeout": camera.motion_timeout}
        )

    def _cancel_timer(self, camera_name: str) -> None:
        """Clear a camera's debounce timer; no-op when IDLE."""
        task = self._timers.pop(camera_name, None)
        if task is not None and not task.done():
            task.cancel()
        set_debounce_armed(len(self._timers))

    async def _timeout_coroutine(self, camera_name: str, timeout: float) -> None:
        """Wait for the debounce window, then return the camera to IDLE."""
        try:
            await asyncio.sleep(timeout)
        except asyncio.CancelledError:
            # Cleared by a reset trigger or shutdown
            return

        # A reset may have replaced this timer in the meantime
        if self._timers.get(camera_name) is asyncio.current_task():
            del self._timers[camera_name]
            set_debounce_armed(len(self._timers))

        logger.info(
            f"Motion handler timeout for {camera_name}",
            extra={"event_type": "debounce_expired", "camera_name": camera_name}
        )

    async def shutdown(self) -> None:
        """Cancel all live debounce timers."""
        tasks = list(self._timers.values())
        for camera_name in list(self._timers):
            self._cancel_timer(camera_name)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
