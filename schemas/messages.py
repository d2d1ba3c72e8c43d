from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Optional

from schemas.rooms import Story


class Envelope(BaseModel):
    type: str
    data: Optional[Any] = None


class RoomMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    room_id: str = Field(alias="roomId")

class JoinRoomData(RoomMessage):
    name: str

class VoteData(RoomMessage):
    vote: Optional[str]

class UpdateStoryData(RoomMessage):
    story: Optional[Story] = None

class UpdateNameData(RoomMessage):
    name: str
