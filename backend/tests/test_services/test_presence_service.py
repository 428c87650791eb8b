"""
Tests for the presence store and camera registry
"""
import pytest

from motion_funnel.schemas.motion import PresenceState
from motion_funnel.services.camera_registry import CameraRegistry
from motion_funnel.services.presence_service import InMemoryPresenceStore

from tests.conftest import make_camera


class TestPresenceState:
    """Tests for the suppression rule."""

    def test_not_at_home_never_suppresses(self):
        assert PresenceState(at_home=False).suppresses("Garage") is False

    def test_at_home_suppresses_unless_excluded(self):
        state = PresenceState(at_home=True, excluded_cameras=frozenset({"Porch"}))

        assert state.suppresses("Garage") is True
        assert state.suppresses("Porch") is False

    def test_exclusion_is_exact_match(self):
        state = PresenceState(at_home=True, excluded_cameras=frozenset({"garage"}))

        assert state.suppresses("Garage") is True


class TestInMemoryPresenceStore:
    """Tests for runtime updates."""

    @pytest.mark.asyncio
    async def test_initial_state(self):
        store = InMemoryPresenceStore(at_home=True, excluded_cameras=["Porch"])

        state = await store.get_presence()

        assert state.at_home is True
        assert state.excluded_cameras == frozenset({"Porch"})

    @pytest.mark.asyncio
    async def test_update_replaces_exclusions(self):
        store = InMemoryPresenceStore(excluded_cameras=["Porch"])

        state = await store.update(excluded_cameras=["Garage"])

        assert state.excluded_cameras == frozenset({"Garage"})
        assert state.at_home is False

    @pytest.mark.asyncio
    async def test_update_with_nothing_keeps_state(self):
        store = InMemoryPresenceStore(at_home=True, excluded_cameras=["Porch"])

        state = await store.update()

        assert state == await store.get_presence()
        assert state.at_home is True


class TestCameraRegistry:
    """Tests for camera lookup."""

    def test_lookup_by_exact_name(self):
        registry = CameraRegistry([make_camera(name="Garage"), make_camera(name="Front Door")])

        assert registry.get("Front Door").name == "Front Door"
        assert registry.get("front door") is None
        assert registry.names() == ["Garage", "Front Door"]

    def test_duplicate_names_rejected(self):
        with pytest.raises(ValueError, match="Duplicate camera name"):
            CameraRegistry([make_camera(), make_camera()])
