from fastapi import APIRouter, HTTPException, Request

from logging_config import get_logger
from schemas.rooms import RoomDetailsResponse

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/rooms", tags=["rooms"])


@rooms_router.get("/{room_id}", response_model=RoomDetailsResponse)
async def get_room_details(room_id: str, request: Request):
    """
    Read-only summary of a room on this instance.

    Returns:
    - participants_count: every participant, including ones kept for reconnection
    - eligible_count: participants not paused
    - voted_count: eligible participants holding a vote
    - revealed, story, last_round_id: current round state
    """
    store = request.app.state.service.store
    room = store.get(room_id)
    if room is None:
        logger.info(f"Room details failed: Room {room_id} not found")
        raise HTTPException(status_code=404, detail="Room not found")

    async with room.lock:
        details = RoomDetailsResponse(
            room_id=room.id,
            participants_count=len(room.participants),
            eligible_count=room.eligible_count,
            voted_count=room.voted_count,
            revealed=room.revealed,
            story=room.story.model_copy() if room.story else None,
            last_round_id=room.last_round.id if room.last_round else None,
        )

    logger.debug(f"Room details retrieved for {room_id}: {details.voted_count}/{details.eligible_count} ready")
    return details
