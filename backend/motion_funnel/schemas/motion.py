"""
Motion Trigger Schemas

Defines Pydantic schemas shared by the trigger listeners and the resolver:
- CameraConfig / CameraMqttSettings: per-camera settings from the config file
- TopicMapping: MQTT topic -> camera assignment
- PresenceState: at-home flag and excluded cameras
- MotionTrigger: canonical (trigger_type, camera_name, state) event
- TriggerResult: diagnostic {error, message} returned to listeners
"""
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class CameraMqttSettings(BaseModel):
    """MQTT topics and payloads a camera listens to (camelCase in the config file)."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    motion_topic: Optional[str] = Field(default=None, alias="motionTopic")
    motion_message: str = Field(default="ON", alias="motionMessage")
    motion_reset_topic: Optional[str] = Field(default=None, alias="motionResetTopic")
    motion_reset_message: str = Field(default="OFF", alias="motionResetMessage")
    doorbell_topic: Optional[str] = Field(default=None, alias="doorbellTopic")
    doorbell_message: str = Field(default="ON", alias="doorbellMessage")


class CameraConfig(BaseModel):
    """
    Camera configuration owned by the camera registry.

    Attributes:
        name: Unique camera name, used as the trigger key on every channel
        record_on_movement: Whether triggers are forwarded to the event sink
        motion_timeout: Debounce window in seconds (<= 0 disables debounce)
        mqtt: Optional MQTT topic settings
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str = Field(min_length=1)
    record_on_movement: bool = Field(default=False, alias="recordOnMovement")
    motion_timeout: float = Field(default=15, alias="motionTimeout")
    mqtt: Optional[CameraMqttSettings] = None


class TopicMapping(BaseModel):
    """Assignment of one subscribed MQTT topic to a camera."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    camera: str
    motion: bool = True
    reset: bool = False
    motion_message: str = Field(default="ON", alias="motionMessage")
    motion_reset_message: str = Field(default="OFF", alias="motionResetMessage")


class PresenceState(BaseModel):
    """Snapshot of the home presence policy."""
    at_home: bool = False
    excluded_cameras: frozenset[str] = frozenset()

    def suppresses(self, camera_name: str) -> bool:
        """True when triggers for this camera must be dropped."""
        return self.at_home and camera_name not in self.excluded_cameras


class MotionTrigger(BaseModel):
    """Canonical trigger handed to the resolver and the event sink."""
    model_config = ConfigDict(frozen=True)

    trigger_type: str
    camera_name: str
    state: bool
    channel: str = "http"


class TriggerOutcome(str, Enum):
    """How the resolver handled a trigger."""
    REJECTED = "rejected"
    NOT_FOUND = "not_found"
    SUPPRESSED_PRESENCE = "suppressed_presence"
    SUPPRESSED_DEBOUNCE = "suppressed_debounce"
    NOTIFIED = "notified"
    FORWARDED = "forwarded"
    RESET = "reset"
    FAILED = "failed"


class TriggerResult(BaseModel):
    """
    Diagnostic result of a trigger.

    Only ``error`` and ``message`` are serialized to HTTP clients; ``outcome``
    distinguishes the resolver paths for logs, metrics and tests.
    """
    error: bool
    message: str
    outcome: TriggerOutcome = Field(default=TriggerOutcome.REJECTED, exclude=True)

    def to_response(self) -> dict:
        return {"error": self.error, "message": self.message}


class CustomTriggerRequest(BaseModel):
    """Request body for triggering a camera from the management API."""
    camera: str = Field(min_length=1, description="Camera name")
    state: bool = Field(default=True, description="True for motion, False for reset")


class PresenceUpdate(BaseModel):
    """Partial update of the presence policy."""
    at_home: Optional[bool] = None
    excluded_cameras: Optional[List[str]] = None


class PresenceResponse(BaseModel):
    at_home: bool
    excluded_cameras: List[str]


class ListenerStatus(BaseModel):
    """Runtime status of one trigger listener."""
    name: str
    enabled: bool
    running: bool
    detail: Optional[str] = None
