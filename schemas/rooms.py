from pydantic import BaseModel
from typing import Optional


class Story(BaseModel):
    title: str = ""
    link: str = ""

class Participant(BaseModel):
    id: str
    name: str
    vote: Optional[str] = None
    paused: bool = False

    @property
    def has_vote(self) -> bool:
        # "" and None both mean no vote
        return bool(self.vote)

class Round(BaseModel):
    id: str
    participants: list[Participant]

class RoomDetailsResponse(BaseModel):
    room_id: str
    participants_count: int
    eligible_count: int
    voted_count: int
    revealed: bool
    story: Optional[Story] = None
    last_round_id: Optional[str] = None
