import asyncio
import json

import pytest

from conftest import FakeWebSocket
from registry import ConnectionRegistry


def test_add_generates_unique_ids():
    registry = ConnectionRegistry()
    first = registry.add(FakeWebSocket())
    second = registry.add(FakeWebSocket())
    assert first.id != second.id
    assert registry.get(first.id) is first
    assert len(registry) == 2


def test_remove_is_idempotent():
    registry = ConnectionRegistry()
    connection = registry.add(FakeWebSocket())
    assert registry.remove(connection.id) is connection
    assert registry.remove(connection.id) is None
    assert registry.get(connection.id) is None


def test_bind_sets_single_room():
    registry = ConnectionRegistry()
    connection = registry.add(FakeWebSocket())
    assert connection.room_id is None
    registry.bind(connection.id, "R1")
    registry.bind(connection.id, "R2")
    assert connection.room_id == "R2"
    assert registry.bind("missing", "R1") is False


@pytest.mark.asyncio
async def test_send_to_slow_peer_fails_fast():
    registry = ConnectionRegistry(send_timeout=0.05)
    connection = registry.add(FakeWebSocket(send_delay=1))
    assert await asyncio.wait_for(connection.send_text("{}"), timeout=0.5) is False


@pytest.mark.asyncio
async def test_send_to_broken_peer_returns_false():
    registry = ConnectionRegistry()
    connection = registry.add(FakeWebSocket(fail=True))
    assert await connection.send_text("{}") is False


@pytest.mark.asyncio
async def test_ping_only_arms_alive_flag_for_pong_answering_clients():
    registry = ConnectionRegistry()
    websocket = FakeWebSocket()
    connection = registry.add(websocket)

    assert await connection.probe() is True
    assert connection.is_alive is True
    assert websocket.sent == [{"type": "ping", "data": {}}]

    connection.mark_alive(answered_probe=True)
    await connection.probe()
    assert connection.is_alive is False
    connection.mark_alive()
    assert connection.is_alive is True
