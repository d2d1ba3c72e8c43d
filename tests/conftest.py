import asyncio
import json

import pytest

from service import RealtimeService


class FakeWebSocket:
    """Stands in for a Starlette WebSocket; records every frame sent to it."""

    def __init__(self, send_delay: float = 0.0, fail: bool = False):
        self.sent = []
        self.closed = False
        self.close_code = None
        self.send_delay = send_delay
        self.fail = fail

    async def send_text(self, text):
        if self.send_delay:
            await asyncio.sleep(self.send_delay)
        if self.fail or self.closed:
            raise RuntimeError("Connection closed")
        self.sent.append(json.loads(text))

    async def close(self, code=1000, reason=""):
        self.closed = True
        self.close_code = code

    def of_type(self, message_type):
        return [m for m in self.sent if m["type"] == message_type]

    def last(self, message_type=None):
        messages = self.of_type(message_type) if message_type else self.sent
        return messages[-1] if messages else None


def frame(message_type, **data):
    return json.dumps({"type": message_type, "data": data})


@pytest.fixture
def service():
    return RealtimeService(heartbeat_interval=30, send_timeout=0.5, shutdown_grace=1)


@pytest.fixture
def connect(service):
    """Open a fake connection on the service, optionally joining a room."""

    async def _connect(name=None, room_id="R1", websocket=None):
        websocket = websocket or FakeWebSocket()
        connection = service.connect(websocket)
        if name is not None:
            await service.receive(connection, frame("join-room", roomId=room_id, name=name))
        return connection, websocket

    return _connect


@pytest.fixture
def send(service):
    async def _send(connection, message_type, **data):
        await service.receive(connection, frame(message_type, **data))

    return _send
