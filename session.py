from typing import Optional

from pydantic import ValidationError

import codec
from broadcaster import Broadcaster
from logging_config import get_logger
from registry import Connection, ConnectionRegistry
from schemas.messages import JoinRoomData, RoomMessage, UpdateNameData, UpdateStoryData, VoteData
from store import Room, RoomStore

logger = get_logger(__name__)


class SessionHandler:
    """Protocol state machine for one server: decodes client frames, mutates rooms, triggers broadcasts.

    A connection starts unjoined; ``join-room`` binds it to a room and every
    other operation is only honoured for the room the connection is joined to.
    Anything malformed or out of place is dropped without a reply.
    """

    def __init__(self, registry: ConnectionRegistry, store: RoomStore, broadcaster: Broadcaster):
        self.registry = registry
        self.store = store
        self.broadcaster = broadcaster
        self._handlers = {
            codec.JOIN_ROOM: (JoinRoomData, self.join_room),
            codec.VOTE: (VoteData, self.vote),
            codec.REVEAL: (RoomMessage, self.reveal),
            codec.REESTIMATE: (RoomMessage, self.reestimate),
            codec.RESET: (RoomMessage, self.reset),
            codec.UPDATE_STORY: (UpdateStoryData, self.update_story),
            codec.UPDATE_NAME: (UpdateNameData, self.update_name),
            codec.SUSPEND_VOTING: (RoomMessage, self.suspend_voting),
            codec.RESUME_VOTING: (RoomMessage, self.resume_voting),
        }

    async def handle(self, connection: Connection, raw: str):
        envelope = codec.decode(raw)
        connection.mark_alive(answered_probe=envelope is not None and envelope.type == codec.PONG)
        if envelope is None or envelope.type == codec.PONG:
            return

        entry = self._handlers.get(envelope.type)
        if entry is None:
            logger.debug(f"Unknown message type {envelope.type!r} from connection {connection.id}")
            return

        model, handler = entry
        try:
            data = model.model_validate(envelope.data)
        except ValidationError as e:
            logger.debug(f"Ignoring malformed {envelope.type} from connection {connection.id}: {e.error_count()} errors")
            return
        await handler(connection, data)

    def disconnect(self, connection: Connection):
        self.registry.remove(connection.id)
        # Participant stays in the room so a rejoin with the same name restores it
        if connection.room_id:
            logger.info(f"Connection {connection.id} left room {connection.room_id}, keeping participant for reconnection")

    def _joined_room(self, connection: Connection, room_id: str) -> Optional[Room]:
        if connection.room_id != room_id:
            logger.debug(f"Connection {connection.id} is not joined to room {room_id}, ignoring")
            return None
        return self.store.get(room_id)

    async def broadcast_room_state(self, room: Room):
        async with room.lock:
            payload = room.state_payload()
        await self.broadcaster.broadcast(room.id, codec.ROOM_STATE, payload)

    async def join_room(self, connection: Connection, data: JoinRoomData):
        room = self.store.get_or_create(data.room_id)
        async with room.lock:
            previous_id = room.join(connection.id, data.name)
        self.registry.bind(connection.id, room.id)

        if previous_id and previous_id != connection.id:
            logger.info(f"Restored participant {data.name!r} in room {room.id} (old id: {previous_id}, new id: {connection.id})")
        else:
            logger.info(f"Participant {data.name!r} joined room {room.id} as {connection.id}")
        await self.broadcast_room_state(room)

    async def vote(self, connection: Connection, data: VoteData):
        room = self._joined_room(connection, data.room_id)
        if room is None:
            return
        async with room.lock:
            updated = room.vote(connection.id, data.vote)
        if updated:
            await self.broadcaster.broadcast(room.id, codec.PARTICIPANT_VOTED, {"id": connection.id, "hasVote": bool(data.vote)})

    async def reveal(self, connection: Connection, data: RoomMessage):
        room = self._joined_room(connection, data.room_id)
        if room is None:
            return
        async with room.lock:
            last_round = room.reveal()
            payload = {
                "participants": room.participants_payload(),
                "lastRound": last_round.model_dump(),
            }
        logger.info(f"Room {room.id} revealed round {last_round.id}")
        await self.broadcaster.broadcast(room.id, codec.REVEALED, payload)

    async def reestimate(self, connection: Connection, data: RoomMessage):
        room = self._joined_room(connection, data.room_id)
        if room is None:
            return
        async with room.lock:
            room.reestimate()
        await self.broadcast_room_state(room)

    async def reset(self, connection: Connection, data: RoomMessage):
        room = self._joined_room(connection, data.room_id)
        if room is None:
            return
        async with room.lock:
            room.reset()
            payload = {"participants": room.participants_payload(), "story": None}
        logger.info(f"Room {room.id} reset by {connection.id}")
        await self.broadcaster.broadcast(room.id, codec.ROOM_RESET, payload)

    async def update_story(self, connection: Connection, data: UpdateStoryData):
        room = self._joined_room(connection, data.room_id)
        if room is None:
            return
        async with room.lock:
            room.update_story(data.story)
            story = room.story.model_dump() if room.story else None
        logger.debug(f"Story updated in room {room.id}: {story}")
        await self.broadcaster.broadcast(room.id, codec.STORY_UPDATED, {"story": story})

    async def update_name(self, connection: Connection, data: UpdateNameData):
        room = self._joined_room(connection, data.room_id)
        if room is None:
            return
        async with room.lock:
            updated = room.rename(connection.id, data.name)
        if updated:
            await self.broadcast_room_state(room)

    async def suspend_voting(self, connection: Connection, data: RoomMessage):
        room = self._joined_room(connection, data.room_id)
        if room is None:
            return
        async with room.lock:
            updated = room.suspend(connection.id)
        if updated:
            await self.broadcast_room_state(room)

    async def resume_voting(self, connection: Connection, data: RoomMessage):
        room = self._joined_room(connection, data.room_id)
        if room is None:
            return
        async with room.lock:
            updated = room.resume(connection.id)
        if updated:
            await self.broadcast_room_state(room)
