"""Pytest fixtures and configuration for test suite

This module provides:
1. Factory functions for creating test objects with sensible defaults
2. A recording event sink that captures forwarded events
3. Pytest fixtures wiring registry, presence store, sink and resolver

Factory Functions:
    - make_camera(**overrides) -> CameraConfig
    - make_topic(**overrides) -> TopicMapping
"""
from typing import List, Tuple

import pytest

from motion_funnel.core.config import Settings
from motion_funnel.schemas.motion import CameraConfig, TopicMapping
from motion_funnel.services.camera_registry import CameraRegistry
from motion_funnel.services.event_sink import EventSink
from motion_funnel.services.motion_resolver import MotionResolver
from motion_funnel.services.presence_service import InMemoryPresenceStore


# =============================================================================
# Factory Functions for Test Objects
# =============================================================================

def make_camera(
    name: str = "Garage",
    record_on_movement: bool = True,
    motion_timeout: float = 10,
    **overrides
) -> CameraConfig:
    """
    Factory function to create CameraConfig instances for testing.

    Example:
        camera = make_camera()
        camera = make_camera(name="Porch", motion_timeout=0)
    """
    return CameraConfig(
        name=name,
        record_on_movement=record_on_movement,
        motion_timeout=motion_timeout,
        **overrides
    )


def make_topic(
    camera: str = "Garage",
    motion: bool = True,
    reset: bool = False,
    motion_message: str = "ON",
    motion_reset_message: str = "OFF",
) -> TopicMapping:
    """Factory function to create TopicMapping instances for testing."""
    return TopicMapping(
        camera=camera,
        motion=motion,
        reset=reset,
        motion_message=motion_message,
        motion_reset_message=motion_reset_message,
    )


class RecordingEventSink(EventSink):
    """Event sink that records every forwarded event."""

    def __init__(self):
        self.events: List[Tuple[str, str, bool]] = []
        self.closed = False

    async def handle(self, trigger_type: str, camera_name: str, state: bool) -> None:
        self.events.append((trigger_type, camera_name, state))

    async def close(self) -> None:
        self.closed = True


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def cameras():
    """Default camera set: debounced, undebounced and record-disabled cameras."""
    return [
        make_camera(name="Garage", motion_timeout=10),
        make_camera(name="Porch", motion_timeout=0),
        make_camera(name="Attic", record_on_movement=False),
    ]


@pytest.fixture
def registry(cameras):
    return CameraRegistry(cameras)


@pytest.fixture
def presence_store():
    return InMemoryPresenceStore()


@pytest.fixture
def sink():
    return RecordingEventSink()


@pytest.fixture
def resolver(registry, presence_store, sink):
    return MotionResolver(registry, presence_store, sink)


@pytest.fixture
def topics():
    return {
        "cam/Garage": make_topic(camera="Garage"),
        "cam/Garage/reset": make_topic(camera="Garage", reset=True),
        "cam/Porch/bell": make_topic(camera="Porch", motion=False),
    }


@pytest.fixture
def test_settings():
    """Settings with every listener disabled and no .env influence."""
    return Settings(
        _env_file=None,
        HTTP_ENABLED=False,
        MQTT_ENABLED=False,
        SMTP_ENABLED=False,
        HTTP_PORT=18090,
        SMTP_PORT=12525,
    )
