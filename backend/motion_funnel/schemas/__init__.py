"""Pydantic schemas for trigger handling and request/response validation"""
from motion_funnel.schemas.motion import (
    CameraConfig,
    CameraMqttSettings,
    TopicMapping,
    PresenceState,
    MotionTrigger,
    TriggerOutcome,
    TriggerResult,
    CustomTriggerRequest,
    PresenceUpdate,
    PresenceResponse,
    ListenerStatus,
)
