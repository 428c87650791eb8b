"""
FastAPI application entry point for the motion trigger funnel

Builds the camera registry, presence store, event sink and motion
controller at startup, starts the enabled trigger listeners and serves the
management API.
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Response

from motion_funnel.core.config import settings, load_interface_config
from motion_funnel.core.logging_config import setup_logging, get_logger
from motion_funnel.core.metrics import init_metrics, get_metrics, get_content_type
from motion_funnel.middleware.logging_middleware import RequestLoggingMiddleware
from motion_funnel.api.v1.motion import router as motion_router
from motion_funnel.api.v1.presence import router as presence_router
from motion_funnel.services.event_sink import EventSink, LoggingEventSink, WebhookEventSink
from motion_funnel.services.motion_controller import MotionController
from motion_funnel.services.presence_service import InMemoryPresenceStore

# Application version
APP_VERSION = "1.0.0"

API_V1_PREFIX = "/api/v1"

setup_logging(app_version=APP_VERSION)
logger = get_logger(__name__)

init_metrics(version=APP_VERSION)


def build_event_sink() -> EventSink:
    """Webhook sink when EVENT_WEBHOOK_URL is set, logging sink otherwise."""
    if settings.EVENT_WEBHOOK_URL:
        return WebhookEventSink(settings.EVENT_WEBHOOK_URL)
    return LoggingEventSink()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    - Startup: loads cameras, builds the motion controller, starts listeners
    - Shutdown: stops listeners and cancels debounce timers
    """
    logger.info(
        "Application starting",
        extra={
            "event_type": "app_startup",
            "version": APP_VERSION,
            "log_level": settings.LOG_LEVEL,
            "debug_mode": settings.DEBUG,
        }
    )

    interface_config = load_interface_config()
    presence_store = InMemoryPresenceStore(
        at_home=settings.AT_HOME,
        excluded_cameras=settings.excluded_cameras_list,
    )
    controller = MotionController(settings, interface_config, presence_store, build_event_sink())

    app.state.presence_store = presence_store
    app.state.motion_controller = controller

    # A listener failing to bind does not prevent app startup
    await controller.start()

    yield

    logger.info("Application shutting down", extra={"event_type": "app_shutdown"})
    await app.state.motion_controller.stop()
    logger.info("Application shutdown complete", extra={"event_type": "app_shutdown_complete"})


app = FastAPI(
    title="Motion Funnel API",
    description="HTTP/MQTT/SMTP motion trigger funnel with per-camera debounce",
    version=APP_VERSION,
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)

app.include_router(motion_router, prefix=API_V1_PREFIX)
app.include_router(presence_router, prefix=API_V1_PREFIX)


@app.get("/")
async def root():
    return {"message": "Motion Funnel API", "version": APP_VERSION}


@app.get("/health")
async def health_check():
    """Health check with listener status."""
    controller = getattr(app.state, "motion_controller", None)
    listeners = {}
    if controller is not None:
        listeners = {s.name: s.running for s in controller.get_status()}
    return {"status": "healthy", "listeners": listeners}


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    return Response(content=get_metrics(), media_type=get_content_type())


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
