"""End-to-end tests through the FastAPI app: WebSocket protocol plus REST endpoints."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from app import app
from backend import RelayBackend


@pytest.fixture
def client():
    app.state.backend = RelayBackend()
    app.state.connections = {}
    with TestClient(app) as test_client:
        yield test_client


def test_chat_between_two_clients(client: TestClient) -> None:
    with client.websocket_connect("/ws") as a:
        assert a.receive_json() == {"type": "connected", "message": "Connected to messaging server", "success": True}
        a.send_json({"type": "create_room"})
        created = a.receive_json()
        assert created["type"] == "room_created"
        key = created["roomKey"]

        with client.websocket_connect("/") as b:
            assert b.receive_json()["type"] == "connected"
            b.send_json({"type": "join_room", "roomKey": key})
            assert b.receive_json() == {"type": "room_joined", "roomKey": key, "success": True, "participantCount": 2}
            assert a.receive_json() == {"type": "participant_joined", "participantCount": 2}

            a.send_json({"type": "send_message", "text": "hi", "sender": "alice"})
            to_a, to_b = a.receive_json(), b.receive_json()
            assert to_a == to_b
            assert (to_a["type"], to_a["text"], to_a["sender"]) == ("message", "hi", "alice")

        assert a.receive_json() == {"type": "participant_left", "participantCount": 1}
        assert client.get(f"/rooms/{key}").json()["participant_count"] == 1

        a.send_json({"type": "leave_room"})
        assert a.receive_json() == {"type": "room_left", "success": True}

    assert client.get(f"/rooms/{key}").status_code == 404


def test_join_missing_room_reports_join_error(client: TestClient) -> None:
    with client.websocket_connect("/ws") as ws:
        ws.receive_json()
        ws.send_json({"type": "join_room", "roomKey": "NOPE0000"})

        assert ws.receive_json() == {"type": "join_error", "error": "Room not found", "success": False}


def test_protocol_errors_keep_connection_open(client: TestClient) -> None:
    with client.websocket_connect("/ws") as ws:
        ws.receive_json()

        ws.send_text("this is not json")
        assert ws.receive_json() == {"type": "error", "error": "Invalid message format", "success": False}

        ws.send_json({"type": "shout"})
        assert ws.receive_json() == {"type": "error", "error": "Unknown message type", "success": False}

        ws.send_json({"type": "send_message", "text": "anyone?"})
        assert ws.receive_json() == {"type": "error", "error": "Not in a room", "success": False}

        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}


def test_binary_frames_are_accepted(client: TestClient) -> None:
    with client.websocket_connect("/ws") as ws:
        ws.receive_json()

        ws.send_bytes(b'{"type": "ping"}')

        assert ws.receive_json() == {"type": "pong"}


def test_reserved_room_can_be_joined(client: TestClient) -> None:
    response = client.post("/rooms")
    assert response.status_code == 201
    key = response.json()["room_key"]

    details = client.get(f"/rooms/{key.lower()}").json()
    assert details["room_key"] == key
    assert details["participant_count"] == 0
    assert details["message_count"] == 0

    with client.websocket_connect("/ws") as ws:
        ws.receive_json()
        ws.send_json({"type": "join_room", "roomKey": key})
        assert ws.receive_json()["participantCount"] == 1
        ws.send_json({"type": "send_message", "text": "first"})
        ws.receive_json()

        assert client.get(f"/rooms/{key}").json()["message_count"] == 1


def test_unknown_room_details_is_404(client: TestClient) -> None:
    response = client.get("/rooms/NOPE0000")

    assert response.status_code == 404
    assert response.json() == {"detail": "Room not found"}


def test_health_reports_rooms_and_connections(client: TestClient) -> None:
    assert client.get("/health").json() == {"status": "ok", "rooms": 0, "connections": 0}

    with client.websocket_connect("/ws") as ws:
        ws.receive_json()
        ws.send_json({"type": "create_room"})
        ws.receive_json()

        assert client.get("/health").json() == {"status": "ok", "rooms": 1, "connections": 1}


def test_lifespan_runs_reaper(client: TestClient) -> None:
    assert app.state.reaper.running


def test_reaper_stops_on_shutdown() -> None:
    app.state.backend = RelayBackend()
    app.state.connections = {}
    with TestClient(app):
        reaper = app.state.reaper
        assert reaper.running

    assert not reaper.running
