import asyncio
import time
import uuid
from typing import Dict, List, Optional

from fastapi import WebSocket

from codec import PING, encode
from logging_config import get_logger

logger = get_logger(__name__)


class Connection:
    """A live websocket plus the bookkeeping the server keeps for it."""

    def __init__(self, connection_id: str, websocket: WebSocket, send_timeout: float = 5.0):
        self.id = connection_id
        self.websocket = websocket
        self.send_timeout = send_timeout
        self.room_id: Optional[str] = None
        self.is_alive = True
        # Only clients that have answered a ping with a pong are held to answering every probe
        self.answers_probes = False
        self.last_pong_at = time.monotonic()

    def mark_alive(self, answered_probe: bool = False):
        self.is_alive = True
        if answered_probe:
            self.answers_probes = True
            self.last_pong_at = time.monotonic()

    async def send_text(self, text: str) -> bool:
        """Send one frame; a slow or broken peer fails fast instead of stalling the caller."""
        try:
            await asyncio.wait_for(self.websocket.send_text(text), timeout=self.send_timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning(f"Send to connection {self.id} timed out after {self.send_timeout}s")
        except Exception as e:
            logger.warning(f"Error sending to connection {self.id}: {e}")
        return False

    async def probe(self) -> bool:
        """Send a ping; returns False if the transport is dead."""
        if self.answers_probes:
            self.is_alive = False
        return await self.send_text(encode(PING, {}))

    async def close(self, code: int = 1000, reason: str = ""):
        try:
            await self.websocket.close(code=code, reason=reason)
        except Exception as e:
            logger.debug(f"Error closing connection {self.id}: {e}")


class ConnectionRegistry:
    """Live connections by id. Knows nothing about rooms beyond each connection's bound room id.

    All methods are synchronous and never await, so each call is atomic on the event loop.
    """

    def __init__(self, send_timeout: float = 5.0):
        self.send_timeout = send_timeout
        self._connections: Dict[str, Connection] = {}

    def add(self, websocket: WebSocket) -> Connection:
        connection_id = uuid.uuid4().hex
        connection = Connection(connection_id, websocket, send_timeout=self.send_timeout)
        self._connections[connection_id] = connection
        logger.debug(f"Registered connection {connection_id} (live connections: {len(self._connections)})")
        return connection

    def remove(self, connection_id: str) -> Optional[Connection]:
        connection = self._connections.pop(connection_id, None)
        if connection:
            logger.debug(f"Deregistered connection {connection_id} (live connections: {len(self._connections)})")
        return connection

    def get(self, connection_id: str) -> Optional[Connection]:
        return self._connections.get(connection_id)

    def bind(self, connection_id: str, room_id: str) -> bool:
        connection = self._connections.get(connection_id)
        if not connection:
            return False
        if connection.room_id and connection.room_id != room_id:
            logger.info(f"Connection {connection_id} moving from room {connection.room_id} to {room_id}")
        connection.room_id = room_id
        return True

    def connections(self) -> List[Connection]:
        return list(self._connections.values())

    def clear(self):
        self._connections.clear()

    def __len__(self):
        return len(self._connections)
