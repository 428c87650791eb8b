"""
Event Sink

Downstream consumer of forwarded motion events. The resolver guarantees at
most one forward per debounce window; sinks should still tolerate
duplicates.

- LoggingEventSink: logs every event (default)
- WebhookEventSink: POSTs every event as JSON via httpx
"""
import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

# Webhook request timeout in seconds
WEBHOOK_TIMEOUT_SECONDS = 5.0

USER_AGENT = "motion-funnel/1.0"


class EventSinkError(Exception):
    """Event could not be delivered to the downstream consumer."""


class EventSink(ABC):
    """Receives canonical (trigger_type, camera_name, state) events."""

    @abstractmethod
    async def handle(self, trigger_type: str, camera_name: str, state: bool) -> None:
        """Handle a forwarded event."""

    async def close(self) -> None:
        """Release resources held by the sink."""


class LoggingEventSink(EventSink):
    """Sink that only logs events."""

    async def handle(self, trigger_type: str, camera_name: str, state: bool) -> None:
        logger.info(
            f"Motion event for {camera_name}: {trigger_type} ({'start' if state else 'reset'})",
            extra={
                "event_type": "motion_event",
                "trigger_type": trigger_type,
                "camera_name": camera_name,
                "state": state,
            }
        )


class WebhookEventSink(EventSink):
    """
    Sink that POSTs each event to a webhook URL.

    Payload:
        {"trigger_type": "motion", "camera_name": "Garage", "state": true,
         "timestamp": "2025-11-23T10:30:00+00:00"}

    Raises EventSinkError on transport errors and non-2xx responses, which
    the listener reports back as a failed trigger.
    """

    def __init__(self, url: str, http_client: Optional[httpx.AsyncClient] = None):
        self.url = url
        self._client = http_client
        self._owns_client = http_client is None

    async def handle(self, trigger_type: str, camera_name: str, state: bool) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=WEBHOOK_TIMEOUT_SECONDS)

        payload = {
            "trigger_type": trigger_type,
            "camera_name": camera_name,
            "state": state,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

        start_time = time.time()
        try:
            response = await self._client.post(
                self.url,
                json=payload,
                headers={"User-Agent": USER_AGENT},
            )
        except httpx.TimeoutException as e:
            raise EventSinkError(f"Webhook timeout after {WEBHOOK_TIMEOUT_SECONDS}s") from e
        except httpx.RequestError as e:
            raise EventSinkError(f"Webhook request error: {e}") from e

        response_time_ms = int((time.time() - start_time) * 1000)

        if response.status_code >= 300:
            raise EventSinkError(f"Webhook returned HTTP {response.status_code}")

        logger.debug(
            "Motion event delivered to webhook",
            extra={
                "event_type": "webhook_delivered",
                "camera_name": camera_name,
                "status_code": response.status_code,
                "response_time_ms": response_time_ms,
            }
        )

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None
