from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from errors import CollabError, InvalidPayload
from synchronizer import RoomSynchronizer
from logging_config import get_logger

logger = get_logger(__name__)

collab_router = APIRouter(prefix="/collab", tags=["collab"])

# Actions that may be served over GET. Everything that writes needs a POST body.
READ_ONLY_ACTIONS = {"get_updates", "get_room_info"}


def get_synchronizer(request: Request) -> RoomSynchronizer:
    return request.app.state.synchronizer


def _add_polling_fields(synchronizer: RoomSynchronizer, action: Optional[str], error: CollabError):
    # Polling clients read these fields even on failure
    if action == "get_updates":
        error.payload.update({"updates": [], "users": [], "lastSync": synchronizer.clock()})


async def run_action(synchronizer: RoomSynchronizer, action: Optional[str], payload: dict) -> JSONResponse:
    logger.debug(f"Dispatching action {action} for room {payload.get('roomId')}")
    try:
        result = await synchronizer.dispatch(action, payload)
    except CollabError as e:
        _add_polling_fields(synchronizer, action, e)
        raise
    except Exception as e:
        logger.error(f"Action {action} failed unexpectedly: {e}", exc_info=True)
        error = CollabError("Internal server error")
        _add_polling_fields(synchronizer, action, error)
        raise error from e
    return JSONResponse(content=result.to_json_dict())


@collab_router.get("")
async def collab_query(request: Request, synchronizer: RoomSynchronizer = Depends(get_synchronizer)):
    # GET /collab?action=get_updates&roomId=...&userId=...&lastSync=...
    # GET /collab?action=get_room_info&roomId=...
    payload = dict(request.query_params)
    action = payload.pop("action", None)
    if action and action not in READ_ONLY_ACTIONS:
        logger.warning(f"Rejected {action} over GET")
        raise InvalidPayload(f"Action {action} requires POST")
    return await run_action(synchronizer, action, payload)


@collab_router.post("")
async def collab_command(
    request: Request,
    action: Optional[str] = Query(None, description="Action name, falls back to the body's `action` field"),
    synchronizer: RoomSynchronizer = Depends(get_synchronizer),
):
    # POST /collab Body: { "action": "create_room", "roomId": "...", "roomData": {...}, "userId": "...", "snapshot": {...} }
    try:
        body = await request.json()
    except ValueError as e:
        logger.warning(f"Rejected request with invalid JSON body from {request.client.host if request.client else 'unknown'}")
        raise InvalidPayload("Request body is not valid JSON") from e
    if not isinstance(body, dict):
        raise InvalidPayload("Request body must be a JSON object")

    action = action or body.get("action")
    return await run_action(synchronizer, action, body)
