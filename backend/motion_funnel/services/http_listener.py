"""
HTTP Trigger Listener

Serves the bare trigger endpoint on its own port (any HTTP method):

    GET /motion?<camera>          motion start
    GET /motion/reset?<camera>    motion reset
    GET /doorbell?<camera>        doorbell

The response body is {"error": bool, "message": str}; status 200 on
success, 500 on error. The listener runs its own uvicorn server so it can
be started and stopped independently of the management API.
"""
import asyncio
import contextlib
import logging
import uuid
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from motion_funnel.core.logging_config import clear_correlation_id, set_correlation_id
from motion_funnel.core.metrics import (
    record_trigger_received,
    record_trigger_result,
    update_listener_status,
)
from motion_funnel.schemas.motion import TriggerOutcome, TriggerResult
from motion_funnel.services.motion_resolver import MotionResolver
from motion_funnel.services.normalizer import MalformedTriggerError, normalize_http
from motion_funnel.utils.sockets import bind_socket, describe_bind_error

logger = logging.getLogger(__name__)

# Cameras differ in the method they use; all are handled alike
TRIGGER_METHODS = ["GET", "POST", "PUT", "HEAD", "DELETE", "PATCH", "OPTIONS"]


async def handle_http_trigger(resolver: MotionResolver, url: Optional[str]) -> TriggerResult:
    """
    Normalize and resolve one HTTP request target.

    No exception escapes; failures become an error result.
    """
    record_trigger_received("http")

    try:
        trigger = normalize_http(url)
        result = await resolver.resolve(trigger)
    except MalformedTriggerError as e:
        result = TriggerResult(error=True, message=e.message, outcome=TriggerOutcome.REJECTED)
    except Exception as e:
        logger.error(
            f"HTTP trigger failed: {e}",
            exc_info=True,
            extra={"event_type": "http_trigger_failed", "url": url}
        )
        result = TriggerResult(error=True, message=str(e), outcome=TriggerOutcome.FAILED)

    record_trigger_result("http", result.outcome.value)
    return result


def create_trigger_app(resolver: MotionResolver) -> FastAPI:
    """Build the ASGI app serving the trigger endpoint."""
    app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)

    @app.api_route("/{path:path}", methods=TRIGGER_METHODS)
    async def trigger(request: Request) -> JSONResponse:
        url = request.url.path
        if request.url.query:
            url = f"{url}?{request.url.query}"

        token = set_correlation_id(str(uuid.uuid4()))
        try:
            result = await handle_http_trigger(resolver, url)
            logger.debug(
                f"Received a new HTTP message {result.to_response()}",
                extra={"event_type": "trigger_result", "channel": "http", "outcome": result.outcome.value}
            )
        finally:
            clear_correlation_id(token)

        return JSONResponse(result.to_response(), status_code=500 if result.error else 200)

    return app


class _ListenerServer(uvicorn.Server):
    """uvicorn server that leaves process signal handling to the main app."""

    @contextlib.contextmanager
    def capture_signals(self):
        yield

    def install_signal_handlers(self) -> None:
        pass


class HTTPTriggerListener:
    """
    Owns the HTTP trigger server.

    Attributes:
        port: TCP port to listen on
        host: "127.0.0.1" when restricted to localhost, else all interfaces
    """

    name = "http"

    def __init__(self, resolver: MotionResolver, port: int, localhost_only: bool = False):
        self.port = port
        self.host = "127.0.0.1" if localhost_only else "0.0.0.0"
        self.app = create_trigger_app(resolver)
        self._server: Optional[_ListenerServer] = None
        self._task: Optional[asyncio.Task] = None
        self._last_error: Optional[str] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    async def start(self) -> bool:
        """
        Bind the port and start serving.

        Returns:
            True if the server is running, False if the bind failed.
        """
        if self.is_running:
            logger.debug("HTTP trigger server already running")
            return True

        logger.debug("Setting up HTTP server for motion detection...")

        try:
            sock = bind_socket(self.host, self.port)
        except OSError as e:
            self._last_error = describe_bind_error("HTTP", self.port, e)
            logger.error(
                self._last_error,
                extra={"event_type": "http_listener_bind_failed", "port": self.port, "errno": e.errno}
            )
            update_listener_status(self.name, False)
            return False

        config = uvicorn.Config(
            self.app,
            log_config=None,
            access_log=False,
            lifespan="off",
        )
        self._server = _ListenerServer(config)
        self._task = asyncio.create_task(
            self._server.serve(sockets=[sock]),
            name="http_trigger_server"
        )
        self._last_error = None
        update_listener_status(self.name, True)

        logger.info(
            f"HTTP server for motion detection is listening on port {self.port}",
            extra={"event_type": "http_listener_started", "host": self.host, "port": self.port}
        )
        return True

    async def stop(self) -> None:
        """Stop serving; in-flight requests are allowed to finish."""
        if self._server is not None:
            self._server.should_exit = True
        if self._task is not None:
            try:
                await self._task
            except Exception as e:
                logger.warning(f"HTTP trigger server stopped with error: {e}")
        self._server = None
        self._task = None
        update_listener_status(self.name, False)
        logger.info("HTTP server closed", extra={"event_type": "http_listener_stopped"})
