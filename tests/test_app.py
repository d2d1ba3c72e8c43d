"""End-to-end tests through the FastAPI app and its websocket endpoint."""

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from app import create_app, origin_allowed
from constants import WS_PATH
from service import RealtimeService


@pytest.fixture
def client():
    app = create_app(RealtimeService(heartbeat_interval=30), allowed_origins=["http://localhost:3000"])
    with TestClient(app) as test_client:
        yield test_client


def test_index(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.text == "WebSocket server running"


def test_join_vote_and_reveal_over_websocket(client):
    with client.websocket_connect(WS_PATH) as alice, client.websocket_connect(WS_PATH) as bob:
        alice.send_json({"type": "join-room", "data": {"roomId": "R1", "name": "Alice"}})
        state = alice.receive_json()
        assert state["type"] == "room-state"
        assert [p["name"] for p in state["data"]["participants"]] == ["Alice"]

        bob.send_json({"type": "join-room", "data": {"roomId": "R1", "name": "Bob"}})
        assert bob.receive_json()["type"] == "room-state"
        assert len(alice.receive_json()["data"]["participants"]) == 2

        alice.send_json({"type": "vote", "data": {"roomId": "R1", "vote": "5"}})
        voted = bob.receive_json()
        assert voted["type"] == "participant-voted"
        assert voted["data"]["hasVote"] is True
        assert "vote" not in voted["data"]
        alice.receive_json()

        # Malformed frames are dropped without a reply or disconnect
        bob.send_text("not json")
        bob.send_json({"type": "explode", "data": {}})

        bob.send_json({"type": "reveal", "data": {"roomId": "R1"}})
        revealed = bob.receive_json()
        assert revealed["type"] == "revealed"
        votes = {p["name"]: p["vote"] for p in revealed["data"]["lastRound"]["participants"]}
        assert votes == {"Alice": "5", "Bob": None}
        assert alice.receive_json()["type"] == "revealed"

        details = client.get("/rooms/R1").json()
        assert details["participants_count"] == 2
        assert details["eligible_count"] == 2
        assert details["voted_count"] == 1
        assert details["revealed"] is True
        assert details["last_round_id"] == revealed["data"]["lastRound"]["id"]


def test_pong_gets_no_reply(client):
    with client.websocket_connect(WS_PATH) as ws:
        ws.send_json({"type": "pong"})
        ws.send_json({"type": "join-room", "data": {"roomId": "R1", "name": "Alice"}})
        assert ws.receive_json()["type"] == "room-state"


def test_binary_frame_is_ignored_and_connection_stays_open(client):
    with client.websocket_connect(WS_PATH) as ws:
        ws.send_bytes(b"\x00\x01")
        ws.send_json({"type": "join-room", "data": {"roomId": "R1", "name": "Alice"}})
        state = ws.receive_json()
        assert state["type"] == "room-state"
        assert [p["name"] for p in state["data"]["participants"]] == ["Alice"]


def test_unknown_room_details_returns_404(client):
    response = client.get("/rooms/missing")
    assert response.status_code == 404
    assert response.json()["detail"] == "Room not found"


def test_disallowed_origin_is_rejected(client):
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect(WS_PATH, headers={"origin": "https://evil.example"}) as ws:
            ws.receive_json()


def test_allowed_origin_is_accepted(client):
    with client.websocket_connect(WS_PATH, headers={"origin": "http://localhost:3000"}) as ws:
        ws.send_json({"type": "join-room", "data": {"roomId": "R1", "name": "Alice"}})
        assert ws.receive_json()["type"] == "room-state"


@pytest.mark.parametrize(
    "origin, allowed, expected",
    [
        (None, ["http://a"], True),
        ("http://a", ["http://a"], True),
        ("http://b", ["http://a"], False),
        ("http://b", ["*"], True),
    ],
)
def test_origin_allowed(origin, allowed, expected):
    assert origin_allowed(origin, allowed) is expected
