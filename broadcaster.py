import asyncio
from typing import Any, Optional

from codec import encode
from logging_config import get_logger
from registry import ConnectionRegistry
from store import RoomStore

logger = get_logger(__name__)


class Broadcaster:
    """Fans a message out to the live connections of one room.

    Delivery is best-effort and at-most-once: participants without a live
    connection here are skipped and failed sends are logged, never retried.
    """

    def __init__(self, registry: ConnectionRegistry, store: RoomStore, bridge=None):
        self.registry = registry
        self.store = store
        self.bridge = bridge

    async def broadcast(self, room_id: str, message_type: str, payload: Any, exclude_id: Optional[str] = None) -> int:
        delivered = await self.deliver_local(room_id, message_type, payload, exclude_id)
        if self.bridge is not None:
            await self.bridge.publish_message(room_id, message_type, payload, exclude_id)
        return delivered

    async def deliver_local(self, room_id: str, message_type: str, payload: Any, exclude_id: Optional[str] = None) -> int:
        room = self.store.get(room_id)
        if room is None:
            logger.debug(f"Skipping {message_type} broadcast: room {room_id} not known on this instance")
            return 0

        async with room.lock:
            participant_ids = room.participant_ids()

        recipients = []
        for participant_id in participant_ids:
            if participant_id == exclude_id:
                continue
            connection = self.registry.get(participant_id)
            # Participants kept for reconnection have no live connection; a connection
            # that has since joined another room must not hear this one
            if connection is None or connection.room_id != room_id:
                continue
            recipients.append(connection)

        if not recipients:
            return 0

        message = encode(message_type, payload)
        results = await asyncio.gather(*(c.send_text(message) for c in recipients), return_exceptions=True)
        delivered = sum(1 for result in results if result is True)
        logger.debug(f"Broadcasted {message_type} to {delivered}/{len(recipients)} connections in room {room_id}")
        return delivered
