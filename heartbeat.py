import asyncio
from typing import Optional

from logging_config import get_logger
from registry import ConnectionRegistry

logger = get_logger(__name__)


class HeartbeatMonitor:
    """Probes every connection each interval and closes the dead ones.

    A connection is dead when the probe cannot be written, or when it has
    answered pings with pongs before and missed the previous one. Clients that
    never send pongs rely on the server's transport-level websocket pings.
    """

    def __init__(self, registry: ConnectionRegistry, interval: float = 30.0):
        self.registry = registry
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    def start(self):
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run())
            logger.info(f"Heartbeat monitor started (interval {self.interval}s)")

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Heartbeat monitor stopped")

    async def _run(self):
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.tick()
            except Exception as e:
                logger.error(f"Heartbeat tick failed: {e}", exc_info=True)

    async def tick(self) -> int:
        """Run one probe round. Returns the number of connections closed."""
        stale = []
        alive = []
        for connection in self.registry.connections():
            if connection.is_alive:
                alive.append(connection)
            else:
                stale.append(connection)

        for connection in stale:
            logger.info(f"Connection {connection.id} missed heartbeat, closing")

        results = await asyncio.gather(*(c.probe() for c in alive), return_exceptions=True)
        for connection, sent in zip(alive, results):
            if sent is not True:
                logger.info(f"Heartbeat probe to connection {connection.id} failed, closing")
                stale.append(connection)

        for connection in stale:
            self.registry.remove(connection.id)
        if stale:
            await asyncio.gather(
                *(c.close(code=1001, reason="Heartbeat timeout") for c in stale),
                return_exceptions=True,
            )
        logger.debug(f"Heartbeat tick: probed {len(alive)}, closed {len(stale)}")
        return len(stale)
