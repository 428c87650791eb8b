"""
Motion API endpoints

Management endpoints for the trigger funnel:
- GET  /motion/listeners                 - Status of the HTTP/MQTT/SMTP listeners
- POST /motion/listeners/{name}/start    - Start one listener
- POST /motion/listeners/{name}/stop     - Stop one listener
- POST /motion/trigger                   - Raise a custom trigger for a camera
- GET  /motion/debounce                  - Cameras with an active debounce timer
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse

from motion_funnel.schemas.motion import CustomTriggerRequest, ListenerStatus
from motion_funnel.services.motion_controller import MotionController, UnknownListenerError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/motion", tags=["motion"])


def get_motion_controller(request: Request) -> MotionController:
    """Dependency returning the controller built in the app lifespan."""
    controller = getattr(request.app.state, "motion_controller", None)
    if controller is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Motion controller not initialized"
        )
    return controller


@router.get("/listeners", response_model=List[ListenerStatus])
async def list_listeners(controller: MotionController = Depends(get_motion_controller)):
    """Return the running state of every trigger listener."""
    return controller.get_status()


@router.post("/listeners/{name}/start", response_model=ListenerStatus)
async def start_listener(name: str, controller: MotionController = Depends(get_motion_controller)):
    """
    Start a single listener.

    **Status Codes:**
    - 200: Listener running
    - 404: Unknown listener name
    - 500: Listener failed to start (e.g. port already in use)
    """
    try:
        started = await controller.start_listener(name)
    except UnknownListenerError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown listener '{name}'")

    listener_status = next(s for s in controller.get_status() if s.name == name)
    if not started:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=listener_status.detail or f"Listener '{name}' failed to start"
        )
    return listener_status


@router.post("/listeners/{name}/stop", response_model=ListenerStatus)
async def stop_listener(name: str, controller: MotionController = Depends(get_motion_controller)):
    """Stop a single listener; the others keep running."""
    try:
        await controller.stop_listener(name)
    except UnknownListenerError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown listener '{name}'")

    return next(s for s in controller.get_status() if s.name == name)


@router.post("/trigger")
async def trigger_motion(
    body: CustomTriggerRequest,
    controller: MotionController = Depends(get_motion_controller)
):
    """
    Raise a custom trigger for a camera.

    Runs through presence policy and debounce like any other channel.
    Returns {error, message}; status 500 on error.
    """
    result = await controller.resolver.trigger_custom(body.camera, body.state)
    return JSONResponse(result.to_response(), status_code=500 if result.error else 200)


@router.get("/debounce", response_model=List[str])
async def list_armed_cameras(controller: MotionController = Depends(get_motion_controller)):
    """Names of cameras whose debounce timer is running."""
    return controller.resolver.armed_cameras()
