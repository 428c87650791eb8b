"""
Presence API endpoints

- GET /presence - Current at-home flag and excluded cameras
- PUT /presence - Partial update of the presence policy
"""
from fastapi import APIRouter, Depends, HTTPException, Request, status

from motion_funnel.schemas.motion import PresenceResponse, PresenceState, PresenceUpdate
from motion_funnel.services.presence_service import InMemoryPresenceStore

router = APIRouter(prefix="/presence", tags=["presence"])


def get_presence_store(request: Request) -> InMemoryPresenceStore:
    store = getattr(request.app.state, "presence_store", None)
    if store is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Presence store not initialized"
        )
    return store


def _to_response(state: PresenceState) -> PresenceResponse:
    return PresenceResponse(
        at_home=state.at_home,
        excluded_cameras=sorted(state.excluded_cameras),
    )


@router.get("", response_model=PresenceResponse)
async def get_presence(store: InMemoryPresenceStore = Depends(get_presence_store)):
    return _to_response(await store.get_presence())


@router.put("", response_model=PresenceResponse)
async def update_presence(
    body: PresenceUpdate,
    store: InMemoryPresenceStore = Depends(get_presence_store)
):
    """Set the at-home flag and/or the excluded camera list; omitted fields are kept."""
    state = await store.update(at_home=body.at_home, excluded_cameras=body.excluded_cameras)
    return _to_response(state)
