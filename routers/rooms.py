from fastapi import APIRouter, HTTPException, Request

from backend import RelayBackend
from errors import RoomKeyCollisionError
from logging_config import get_logger
from schemas.rooms import CreateRoomResponse, RoomDetailsResponse

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/rooms", tags=["rooms"])


def get_backend(request: Request) -> RelayBackend:
    return request.app.state.backend


@rooms_router.post("", status_code=201, response_model=CreateRoomResponse)
async def create_room(request: Request):
    """
    Reserve an empty room and return its key.

    The room has no members until a client sends `join_room` with the key over
    the WebSocket. If nobody joins within the idle threshold the reaper
    reclaims it.
    """
    client_host = request.client.host if request.client else "unknown"
    logger.info(f"Room creation request from {client_host}")
    backend = get_backend(request)

    async with backend.lock:
        try:
            room = backend.rooms.create()
        except RoomKeyCollisionError as e:
            logger.error(f"Error creating room: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail="Failed to create room")

    return CreateRoomResponse(room_key=room.key, created_at=room.created_at.isoformat())


@rooms_router.get("/{room_key}", response_model=RoomDetailsResponse)
async def get_room_details(room_key: str, request: Request):
    """
    Get room details.

    Returns:
    - room_key: Room key clients join with
    - created_at: Room creation timestamp (UTC)
    - participant_count: Number of connections currently in the room
    - message_count: Number of messages in the rolling history
    """
    key = room_key.strip().upper()
    backend = get_backend(request)

    async with backend.lock:
        room = backend.rooms.get(key)
        if room is None:
            logger.info(f"Room details failed: Room {key} not found")
            raise HTTPException(status_code=404, detail="Room not found")
        details = RoomDetailsResponse(
            room_key=room.key,
            created_at=room.created_at.isoformat(),
            participant_count=room.participant_count,
            message_count=len(room.history),
        )

    logger.debug(f"Room details retrieved for {key}: {details.participant_count} participants")
    return details
