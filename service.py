import asyncio
from typing import Optional

from fastapi import WebSocket

from backend import RedisBridge
from broadcaster import Broadcaster
from heartbeat import HeartbeatMonitor
from logging_config import get_logger
from registry import Connection, ConnectionRegistry
from session import SessionHandler
from store import RoomStore

logger = get_logger(__name__)


class RealtimeService:
    """Owns every piece of in-memory state for one server instance.

    Constructed explicitly and handed to the app so tests can run several
    independent instances in one process.
    """

    def __init__(
        self,
        redis_url: str = "",
        heartbeat_interval: float = 30.0,
        send_timeout: float = 5.0,
        shutdown_grace: float = 10.0,
        bridge: Optional[RedisBridge] = None,
    ):
        self.redis_url = redis_url
        self.shutdown_grace = shutdown_grace
        self.registry = ConnectionRegistry(send_timeout=send_timeout)
        self.store = RoomStore()
        self.broadcaster = Broadcaster(self.registry, self.store)
        self.session = SessionHandler(self.registry, self.store, self.broadcaster)
        self.heartbeat = HeartbeatMonitor(self.registry, interval=heartbeat_interval)
        self.bridge = bridge

    async def start(self):
        if self.bridge is None and self.redis_url:
            try:
                self.bridge = RedisBridge.from_url(self.redis_url)
            except Exception as e:
                logger.error(f"Failed to connect to Redis, running in single-instance mode: {e}", exc_info=True)
                self.bridge = None

        if self.bridge is not None:
            try:
                self.bridge.start(self.broadcaster.deliver_local)
                self.broadcaster.bridge = self.bridge
                logger.info("Cross-instance bridge enabled")
            except Exception as e:
                logger.error(f"Failed to subscribe to Redis, running in single-instance mode: {e}", exc_info=True)
                self.bridge = None
        else:
            logger.info("No Redis configured, running in single-instance mode")

        self.heartbeat.start()
        logger.info("Realtime service started")

    def connect(self, websocket: WebSocket) -> Connection:
        connection = self.registry.add(websocket)
        logger.info(f"Client connected: {connection.id}")
        return connection

    async def receive(self, connection: Connection, raw: str):
        await self.session.handle(connection, raw)

    def disconnect(self, connection: Connection):
        logger.info(f"Client disconnected: {connection.id}")
        self.session.disconnect(connection)

    async def shutdown(self):
        logger.info("Starting graceful shutdown...")
        await self.heartbeat.stop()

        if self.bridge is not None:
            self.broadcaster.bridge = None
            await self.bridge.close()
            self.bridge = None

        connections = self.registry.connections()
        self.registry.clear()
        if connections:
            logger.info(f"Closing {len(connections)} connections...")
            try:
                await asyncio.wait_for(
                    asyncio.gather(*(c.close(code=1001, reason="Server shutting down") for c in connections)),
                    timeout=self.shutdown_grace,
                )
            except asyncio.TimeoutError:
                logger.warning(f"Shutdown grace period of {self.shutdown_grace}s elapsed with connections still closing")

        self.store.clear()
        logger.info("Graceful shutdown complete")
