import json
from typing import Any, Optional

from pydantic import ValidationError

from logging_config import get_logger
from schemas.messages import Envelope

logger = get_logger(__name__)

# Server -> client message types
ROOM_STATE = "room-state"
PARTICIPANT_VOTED = "participant-voted"
REVEALED = "revealed"
ROOM_RESET = "room-reset"
STORY_UPDATED = "story-updated"
PING = "ping"

# Client -> server message types
JOIN_ROOM = "join-room"
VOTE = "vote"
REVEAL = "reveal"
REESTIMATE = "reestimate"
RESET = "reset"
UPDATE_STORY = "update-story"
UPDATE_NAME = "update-name"
SUSPEND_VOTING = "suspend-voting"
RESUME_VOTING = "resume-voting"
PONG = "pong"


def decode(raw: str) -> Optional[Envelope]:
    """Parse one text frame into an envelope, or None if it is not a valid envelope."""
    try:
        return Envelope.model_validate(json.loads(raw))
    except json.JSONDecodeError:
        logger.debug("Dropping frame that is not valid JSON")
    except ValidationError as e:
        logger.debug(f"Dropping frame with invalid envelope: {e.error_count()} errors")
    return None


def encode(message_type: str, data: Any) -> str:
    return json.dumps({"type": message_type, "data": data})
