"""
Trigger Normalizer

Turns the raw message of each ingress channel into a canonical
MotionTrigger (trigger_type, camera_name, state):

- HTTP:  GET /<triggerType>[/reset]?<cameraName>
- MQTT:  (topic, payload) matched against the configured topic map
- SMTP:  envelope recipient -> camera name for a loopback /motion call

Rejected messages raise MalformedTriggerError with the diagnostic message
reported back to the caller (HTTP) or logged (MQTT).
"""
from typing import Mapping, Optional, Union
from urllib.parse import unquote, urlsplit

from motion_funnel.schemas.motion import MotionTrigger, TopicMapping

TRIGGER_MOTION = "motion"
TRIGGER_DOORBELL = "doorbell"
TRIGGER_CUSTOM = "custom"


class MalformedTriggerError(ValueError):
    """Raw message could not be turned into a trigger."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


def normalize_http(url: Optional[str]) -> MotionTrigger:
    """
    Normalize an HTTP request target.

    The first path segment is the trigger type. A path containing ``/reset``
    is a motion reset (state False); any other path yields state True.
    The whole query string, percent-decoded, is the camera name.

    Examples:
        >>> normalize_http("/motion?Garage")
        MotionTrigger(trigger_type='motion', camera_name='Garage', state=True, channel='http')
        >>> normalize_http("/motion/reset?Front%20Door").state
        False

    Raises:
        MalformedTriggerError: If path or query is missing.
    """
    if not url:
        raise MalformedTriggerError(f"Malformed URL {url}")

    parts = urlsplit(url)
    if not parts.path or not parts.query:
        raise MalformedTriggerError(f"Malformed URL {url}")

    camera_name = unquote(parts.query)

    if "/reset" in parts.path:
        return MotionTrigger(
            trigger_type=TRIGGER_MOTION,
            camera_name=camera_name,
            state=False,
            channel="http",
        )

    segments = parts.path.split("/")
    trigger_type = segments[1] if len(segments) > 1 else ""

    return MotionTrigger(
        trigger_type=trigger_type,
        camera_name=camera_name,
        state=True,
        channel="http",
    )


def resolve_mqtt_state(mapping: TopicMapping, message: str) -> Optional[bool]:
    """
    Map an MQTT payload to a trigger state for a topic mapping.

    Doorbell topics always fire. Reset topics only know the reset message.
    Plain motion topics know both the motion and the reset message.

    Returns:
        True / False, or None when the payload matches neither message.
    """
    if not mapping.motion:
        return True

    if mapping.reset:
        return False if message == mapping.motion_reset_message else None

    if message == mapping.motion_message:
        return True
    if message == mapping.motion_reset_message:
        return False
    return None


def normalize_mqtt(
    topic: str,
    payload: Union[bytes, str],
    topics: Mapping[str, TopicMapping]
) -> MotionTrigger:
    """
    Normalize an incoming MQTT message.

    The topic must match a configured topic exactly (wildcard sub-topics
    delivered through the ``<topic>/#`` subscription are not mapped).

    Raises:
        MalformedTriggerError: If the topic is unmapped or the payload does
            not match the configured messages.
    """
    message = payload.decode("utf-8", errors="replace") if isinstance(payload, bytes) else payload

    mapping = topics.get(topic)
    if mapping is None:
        raise MalformedTriggerError(f"Can not assign the MQTT topic ({topic}) to a camera!")

    state = resolve_mqtt_state(mapping, message)
    if state is None:
        raise MalformedTriggerError(
            f"The incoming MQTT message ({message}) for the topic ({topic}) "
            f"was not the same as set in config. Skip..."
        )

    return MotionTrigger(
        trigger_type=TRIGGER_MOTION if mapping.motion else TRIGGER_DOORBELL,
        camera_name=mapping.camera,
        state=state,
        channel="mqtt",
    )


def recipient_to_camera_name(address: str, space_replace: Optional[str]) -> str:
    """
    Recover a camera name from an email recipient.

    The local part has every occurrence of the delimiter replaced by a
    space, so ``Front+Door@cams.local`` with delimiter ``+`` becomes
    ``Front Door``.
    """
    local_part = address.split("@")[0]
    if space_replace:
        local_part = local_part.replace(space_replace, " ")
    return local_part
