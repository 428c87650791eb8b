"""Application configuration using Pydantic Settings"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Dict, List, Optional
from pathlib import Path
import json
import logging

from motion_funnel.schemas.motion import CameraConfig, TopicMapping

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_DIR: Optional[str] = None

    # Interface config (cameras and their MQTT topics)
    CONFIG_FILE: str = "data/config.json"

    # HTTP trigger listener
    HTTP_ENABLED: bool = False
    HTTP_PORT: int = 8090
    HTTP_LOCALHOST_ONLY: bool = False

    # MQTT trigger listener
    MQTT_ENABLED: bool = False
    MQTT_HOST: str = "localhost"
    MQTT_PORT: int = 1883
    MQTT_TLS: bool = False
    MQTT_USERNAME: Optional[str] = None
    MQTT_PASSWORD: Optional[str] = None

    # SMTP trigger listener
    SMTP_ENABLED: bool = False
    SMTP_PORT: int = 2525
    SMTP_HTTP_PORT: Optional[int] = None  # Falls back to HTTP_PORT
    SMTP_SPACE_REPLACE: str = "+"
    SMTP_HOSTNAME: str = "motion-funnel"  # Fixed greeting name, no FQDN lookup

    # Presence defaults (the store is updated at runtime through the API)
    AT_HOME: bool = False
    # Stored as string to avoid pydantic-settings JSON parsing; use excluded_cameras_list property
    EXCLUDED_CAMERAS: str = ""

    # Downstream event sink; events are only logged when unset
    EVENT_WEBHOOK_URL: Optional[str] = None

    @field_validator('HTTP_PORT', 'MQTT_PORT', 'SMTP_PORT', 'SMTP_HTTP_PORT', mode='after')
    @classmethod
    def validate_port(cls, v: Optional[int]) -> Optional[int]:
        """Validate that listener ports are in the TCP range."""
        if v is not None and not 1 <= v <= 65535:
            raise ValueError(f"Port must be between 1 and 65535, got {v}")
        return v

    @property
    def excluded_cameras_list(self) -> List[str]:
        """Parse EXCLUDED_CAMERAS from comma-separated string"""
        return [name.strip() for name in self.EXCLUDED_CAMERAS.split(",") if name.strip()]

    @property
    def smtp_loopback_port(self) -> int:
        """Port of the HTTP listener that SMTP triggers are forwarded to."""
        return self.SMTP_HTTP_PORT or self.HTTP_PORT

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


class InterfaceConfig(BaseModel):
    """
    Camera configuration loaded from the JSON config file.

    Example file:
        {
          "cameras": [
            {
              "name": "Garage",
              "recordOnMovement": true,
              "motionTimeout": 10,
              "mqtt": {"motionTopic": "cam/Garage", "motionMessage": "ON", "motionResetMessage": "OFF"}
            }
          ]
        }

    The MQTT topic map is derived from the per-camera ``mqtt`` blocks.
    """
    cameras: List[CameraConfig] = Field(default_factory=list)
    topics: Dict[str, TopicMapping] = Field(default_factory=dict)

    @model_validator(mode='after')
    def derive_topics(self) -> "InterfaceConfig":
        names = [camera.name for camera in self.cameras]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Duplicate camera names in config: {', '.join(duplicates)}")

        if not self.topics:
            self.topics = build_topic_mappings(self.cameras)
        return self


def build_topic_mappings(cameras: List[CameraConfig]) -> Dict[str, TopicMapping]:
    """
    Build the MQTT topic map from camera settings.

    Each camera may claim a motion topic, a separate motion reset topic and a
    doorbell topic. A reset topic equal to the motion topic is not registered
    twice; the motion mapping resolves both messages.

    Raises:
        ValueError: If a topic is claimed more than once.
    """
    topics: Dict[str, TopicMapping] = {}

    def _register(topic: str, mapping: TopicMapping) -> None:
        if topic in topics:
            raise ValueError(f"MQTT topic '{topic}' is assigned more than once")
        topics[topic] = mapping

    for camera in cameras:
        mqtt = camera.mqtt
        if mqtt is None:
            continue

        if mqtt.motion_topic:
            _register(mqtt.motion_topic, TopicMapping(
                camera=camera.name,
                motion=True,
                reset=False,
                motion_message=mqtt.motion_message,
                motion_reset_message=mqtt.motion_reset_message,
            ))

        if mqtt.motion_reset_topic and mqtt.motion_reset_topic != mqtt.motion_topic:
            _register(mqtt.motion_reset_topic, TopicMapping(
                camera=camera.name,
                motion=True,
                reset=True,
                motion_message=mqtt.motion_message,
                motion_reset_message=mqtt.motion_reset_message,
            ))

        if mqtt.doorbell_topic:
            _register(mqtt.doorbell_topic, TopicMapping(
                camera=camera.name,
                motion=False,
                reset=False,
                motion_message=mqtt.doorbell_message,
                motion_reset_message=mqtt.motion_reset_message,
            ))

    return topics


def load_interface_config(path: Optional[str] = None) -> InterfaceConfig:
    """
    Load cameras and MQTT topics from the JSON config file.

    Args:
        path: Config file path (default from settings.CONFIG_FILE)

    Returns:
        Parsed InterfaceConfig. A missing file yields an empty config.

    Raises:
        ValueError: If the file is not valid JSON or fails validation.
    """
    config_path = Path(path or settings.CONFIG_FILE)

    if not config_path.exists():
        logger.warning(
            f"Config file {config_path} not found, starting without cameras",
            extra={"event_type": "config_missing", "path": str(config_path)}
        )
        return InterfaceConfig()

    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in config file {config_path}: {e}") from e

    config = InterfaceConfig.model_validate(data)
    logger.info(
        f"Loaded {len(config.cameras)} cameras and {len(config.topics)} MQTT topics",
        extra={
            "event_type": "config_loaded",
            "path": str(config_path),
            "camera_count": len(config.cameras),
            "topic_count": len(config.topics),
        }
    )
    return config


# Global settings instance
settings = Settings()
