"""
SMTP Trigger Listener

Accepts inbound mail from cameras that can only notify by email. Every
envelope recipient names a camera (``Front+Door@anything`` -> ``Front Door``)
and is turned into a loopback ``GET /motion?<camera>`` call against the HTTP
trigger listener.

- Authentication optional; any credentials are accepted
- No STARTTLS (no TLS context is configured)
- Fixed greeting hostname, so no FQDN/reverse lookup happens
- The mail transaction always completes with 250; loopback results and
  errors are only logged
"""
import asyncio
import logging
import uuid
from typing import Any, Optional, Set
from urllib.parse import quote

import httpx
from aiosmtpd.smtp import SMTP, AuthResult, Envelope, Session

from motion_funnel.core.logging_config import (
    clear_correlation_id,
    sanitize_log_value,
    set_correlation_id,
)
from motion_funnel.core.metrics import record_trigger_received, update_listener_status
from motion_funnel.services.normalizer import recipient_to_camera_name
from motion_funnel.utils.sockets import bind_socket, describe_bind_error

logger = logging.getLogger(__name__)

# Loopback request timeout in seconds
LOOPBACK_TIMEOUT_SECONDS = 10.0

CLOSE_TIMEOUT_SECONDS = 5.0


def accept_any_login(server: SMTP, session: Session, envelope: Envelope, mechanism: str, auth_data: Any) -> AuthResult:
    """Authenticator that accepts every login."""
    return AuthResult(success=True, handled=False)


class SMTPTriggerHandler:
    """aiosmtpd handler turning recipients into HTTP motion triggers."""

    def __init__(self, http_port: int, space_replace: Optional[str] = "+"):
        self.http_port = http_port
        self.space_replace = space_replace
        self._tasks: Set[asyncio.Task] = set()

    def loopback_url(self, camera_name: str) -> str:
        return f"http://127.0.0.1:{self.http_port}/motion?{quote(camera_name, safe='')}"

    async def handle_DATA(self, server: SMTP, session: Session, envelope: Envelope) -> str:
        for recipient in envelope.rcpt_tos:
            camera_name = recipient_to_camera_name(recipient, self.space_replace)
            record_trigger_received("smtp")
            logger.debug(
                f"Email received ({camera_name}).",
                extra={"event_type": "smtp_mail_received", "camera_name": sanitize_log_value(camera_name)}
            )

            task = asyncio.create_task(self._loopback(camera_name), name=f"smtp_loopback_{camera_name}")
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        return "250 Message accepted for delivery"

    async def _loopback(self, camera_name: str) -> None:
        """Issue the loopback motion call; errors never reach the mail transaction."""
        token = set_correlation_id(str(uuid.uuid4()))
        try:
            async with httpx.AsyncClient(timeout=LOOPBACK_TIMEOUT_SECONDS) as client:
                response = await client.get(self.loopback_url(camera_name))
            logger.debug(
                f"SMTP loopback call for {camera_name} answered with HTTP {response.status_code}",
                extra={
                    "event_type": "smtp_loopback_done",
                    "camera_name": sanitize_log_value(camera_name),
                    "status_code": response.status_code,
                }
            )
        except Exception as e:
            logger.error(
                f"Error making HTTP call ({camera_name}): {e}",
                exc_info=True,
                extra={"event_type": "smtp_loopback_failed", "camera_name": sanitize_log_value(camera_name)}
            )
        finally:
            clear_correlation_id(token)

    async def wait_idle(self, timeout: Optional[float] = None) -> None:
        """
        Wait for all pending loopback calls.

        Calls still running after timeout seconds are cancelled.
        """
        if not self._tasks:
            return
        tasks = list(self._tasks)
        _, pending = await asyncio.wait(tasks, timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning(
                f"Cancelled {len(pending)} pending SMTP loopback calls",
                extra={"event_type": "smtp_loopback_cancelled", "count": len(pending)}
            )
            await asyncio.gather(*pending, return_exceptions=True)


class SMTPTriggerListener:
    """Owns the SMTP server serving SMTPTriggerHandler."""

    name = "smtp"

    def __init__(
        self,
        port: int,
        http_port: int,
        space_replace: Optional[str] = "+",
        hostname: str = "motion-funnel"
    ):
        self.port = port
        self.hostname = hostname
        self.handler = SMTPTriggerHandler(http_port, space_replace)
        self._server: Optional[asyncio.AbstractServer] = None
        self._last_error: Optional[str] = None

    @property
    def is_running(self) -> bool:
        return self._server is not None

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    def _protocol_factory(self) -> SMTP:
        return SMTP(
            self.handler,
            hostname=self.hostname,
            auth_required=False,
            auth_require_tls=False,
            authenticator=accept_any_login,
        )

    async def start(self) -> bool:
        """
        Bind the port and start accepting mail.

        Returns:
            True if the server is running, False if the bind failed.
        """
        if self.is_running:
            logger.debug("SMTP trigger server already running")
            return True

        logger.debug("Setting up SMTP server for motion detection...")

        try:
            sock = bind_socket(None, self.port)
        except OSError as e:
            self._last_error = describe_bind_error("SMTP", self.port, e)
            logger.error(
                self._last_error,
                extra={"event_type": "smtp_listener_bind_failed", "port": self.port, "errno": e.errno}
            )
            update_listener_status(self.name, False)
            return False

        loop = asyncio.get_running_loop()
        self._server = await loop.create_server(self._protocol_factory, sock=sock)
        self._last_error = None
        update_listener_status(self.name, True)

        logger.info(
            f"SMTP server for motion detection is listening on port {self.port}",
            extra={"event_type": "smtp_listener_started", "port": self.port}
        )
        return True

    async def stop(self) -> None:
        if self._server is not None:
            self._server.close()
            try:
                # Open client sessions keep wait_closed pending
                await asyncio.wait_for(self._server.wait_closed(), timeout=CLOSE_TIMEOUT_SECONDS)
            except asyncio.TimeoutError:
                logger.warning("SMTP server closed with client sessions still open")
            self._server = None
        await self.handler.wait_idle(timeout=LOOPBACK_TIMEOUT_SECONDS)
        update_listener_status(self.name, False)
        logger.info("SMTP server closed", extra={"event_type": "smtp_listener_stopped"})
