"""
Home Presence Policy

While "at home" is active, triggers of every camera that is not explicitly
excluded are dropped before debounce. The state is read fresh for every
trigger; the resolver never caches it.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Iterable, Optional

from motion_funnel.schemas.motion import PresenceState

logger = logging.getLogger(__name__)


class PresenceStore(ABC):
    """Source of truth for the presence policy."""

    @abstractmethod
    async def get_presence(self) -> PresenceState:
        """Return the current presence state."""


class InMemoryPresenceStore(PresenceStore):
    """
    Presence store kept in process memory.

    Updated at runtime through the management API; initial values come from
    the AT_HOME / EXCLUDED_CAMERAS settings.
    """

    def __init__(self, at_home: bool = False, excluded_cameras: Optional[Iterable[str]] = None):
        self._state = PresenceState(
            at_home=at_home,
            excluded_cameras=frozenset(excluded_cameras or ()),
        )
        self._lock = asyncio.Lock()

    async def get_presence(self) -> PresenceState:
        return self._state

    async def update(
        self,
        at_home: Optional[bool] = None,
        excluded_cameras: Optional[Iterable[str]] = None
    ) -> PresenceState:
        """
        Update the presence state; None leaves a field unchanged.

        Returns:
            The new presence state.
        """
        async with self._lock:
            self._state = PresenceState(
                at_home=self._state.at_home if at_home is None else at_home,
                excluded_cameras=(
                    self._state.excluded_cameras if excluded_cameras is None
                    else frozenset(excluded_cameras)
                ),
            )

        logger.info(
            "Presence policy updated",
            extra={
                "event_type": "presence_updated",
                "at_home": self._state.at_home,
                "excluded_cameras": sorted(self._state.excluded_cameras),
            }
        )
        return self._state
