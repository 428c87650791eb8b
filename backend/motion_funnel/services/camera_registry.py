"""Read-only camera lookup by name."""
import logging
from typing import Dict, Iterable, List, Optional

from motion_funnel.schemas.motion import CameraConfig

logger = logging.getLogger(__name__)


class CameraRegistry:
    """
    Immutable name -> CameraConfig lookup.

    Built once at startup from the interface config; camera settings do not
    change for the lifetime of the process.
    """

    def __init__(self, cameras: Iterable[CameraConfig]):
        self._cameras: Dict[str, CameraConfig] = {}
        for camera in cameras:
            if camera.name in self._cameras:
                raise ValueError(f"Duplicate camera name: {camera.name}")
            self._cameras[camera.name] = camera

        logger.debug(
            f"Camera registry loaded with {len(self._cameras)} cameras",
            extra={"event_type": "camera_registry_loaded", "cameras": list(self._cameras)}
        )

    def get(self, name: str) -> Optional[CameraConfig]:
        """Return the camera with this exact name, or None."""
        return self._cameras.get(name)

    def names(self) -> List[str]:
        return list(self._cameras)
