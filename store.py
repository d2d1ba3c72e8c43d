import asyncio
import uuid
from typing import Dict, List, Optional

from logging_config import get_logger
from schemas.rooms import Participant, Round, Story

logger = get_logger(__name__)


class Room:
    """One estimation session.

    Mutators are plain synchronous methods; callers hold ``room.lock`` around
    them and around any snapshot they take for broadcasting.
    """

    def __init__(self, room_id: str):
        self.id = room_id
        self.lock = asyncio.Lock()
        self.participants: Dict[str, Participant] = {}
        self.revealed = False
        self.story: Optional[Story] = None
        self.last_round: Optional[Round] = None

    def join(self, participant_id: str, name: str) -> Optional[str]:
        """Upsert the participant for ``participant_id``.

        If another participant already has exactly this name, its vote and
        paused state move to ``participant_id`` and the old entry is retired.
        Returns the retired participant id, if any.
        """
        previous_id = None
        for existing_id, existing in self.participants.items():
            if existing.name == name:
                previous_id = existing_id
                break

        if previous_id is not None:
            previous = self.participants.pop(previous_id)
            self.participants[participant_id] = Participant(
                id=participant_id,
                name=name,
                vote=previous.vote,
                paused=previous.paused,
            )
        else:
            self.participants[participant_id] = Participant(id=participant_id, name=name)
        return previous_id

    def vote(self, participant_id: str, vote: Optional[str]) -> bool:
        participant = self.participants.get(participant_id)
        if not participant:
            return False
        participant.vote = vote or None
        return True

    def reveal(self) -> Round:
        self.revealed = True
        self.last_round = Round(
            id=uuid.uuid4().hex,
            participants=[p.model_copy(deep=True) for p in self.participants.values()],
        )
        return self.last_round

    def clear_votes(self):
        for participant in self.participants.values():
            participant.vote = None

    def reestimate(self):
        self.revealed = False
        self.clear_votes()

    def reset(self):
        self.revealed = False
        self.clear_votes()
        self.story = None
        self.last_round = None

    def update_story(self, story: Optional[Story]):
        self.story = story

    def rename(self, participant_id: str, name: str) -> bool:
        participant = self.participants.get(participant_id)
        if not participant:
            return False
        participant.name = name
        return True

    def suspend(self, participant_id: str) -> bool:
        participant = self.participants.get(participant_id)
        if not participant:
            return False
        participant.paused = True
        return True

    def resume(self, participant_id: str) -> bool:
        participant = self.participants.get(participant_id)
        if not participant:
            return False
        participant.paused = False
        participant.vote = None
        return True

    @property
    def eligible_count(self) -> int:
        return sum(1 for p in self.participants.values() if not p.paused)

    @property
    def voted_count(self) -> int:
        return sum(1 for p in self.participants.values() if not p.paused and p.has_vote)

    def participant_ids(self) -> List[str]:
        return list(self.participants)

    def participants_payload(self) -> List[dict]:
        return [p.model_dump() for p in self.participants.values()]

    def state_payload(self) -> dict:
        return {
            "participants": self.participants_payload(),
            "revealed": self.revealed,
            "story": self.story.model_dump() if self.story else None,
            "lastRound": self.last_round.model_dump() if self.last_round else None,
        }


class RoomStore:
    """Room id -> Room. Rooms are created lazily and live until shutdown."""

    def __init__(self):
        self._rooms: Dict[str, Room] = {}

    def get_or_create(self, room_id: str) -> Room:
        # No await between lookup and insert, so concurrent callers on the loop get one instance
        room = self._rooms.get(room_id)
        if room is None:
            room = self._rooms.setdefault(room_id, Room(room_id))
            logger.info(f"Created room {room_id} (rooms: {len(self._rooms)})")
        return room

    def get(self, room_id: str) -> Optional[Room]:
        return self._rooms.get(room_id)

    def clear(self):
        self._rooms.clear()

    def __len__(self):
        return len(self._rooms)

    def __contains__(self, room_id: str):
        return room_id in self._rooms
