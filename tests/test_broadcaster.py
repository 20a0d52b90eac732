"""Unit tests for message fan-out and rolling history."""

from __future__ import annotations

from backend import RoomStore
from broadcaster import MessageBroadcaster
from relay_helpers import RecordingConnection as Connection
from schemas.envelopes import ChatMessage, ParticipantJoinedEnvelope


def _message(i: int) -> ChatMessage:
    return ChatMessage(id=f"id-{i}", text=f"msg {i}", sender="tester", timestamp=f"2025-01-01T00:00:{i:02d}.000Z")


def _room_with(*connections: Connection):
    room = RoomStore().create()
    for connection in connections:
        room.members[connection.connection_id] = connection
    return room


def test_record_keeps_the_fifty_most_recent_in_order() -> None:
    broadcaster = MessageBroadcaster()
    room = _room_with()

    for i in range(57):
        broadcaster.record(room, _message(i))

    assert len(room.history) == 50
    assert [m.id for m in room.history] == [f"id-{i}" for i in range(7, 57)]


def test_recent_history_returns_last_n_oldest_first() -> None:
    broadcaster = MessageBroadcaster()
    room = _room_with()
    for i in range(15):
        broadcaster.record(room, _message(i))

    recent = broadcaster.recent_history(room)

    assert [m.id for m in recent] == [f"id-{i}" for i in range(5, 15)]


def test_recent_history_with_short_history_returns_everything() -> None:
    broadcaster = MessageBroadcaster()
    room = _room_with()
    for i in range(3):
        broadcaster.record(room, _message(i))

    assert [m.id for m in broadcaster.recent_history(room, 10)] == ["id-0", "id-1", "id-2"]
    assert broadcaster.recent_history(room, 0) == []


def test_deliver_skips_excluded_connection() -> None:
    a, b, c = Connection("a"), Connection("b"), Connection("c")
    room = _room_with(a, b, c)

    delivered = MessageBroadcaster().deliver(room, ParticipantJoinedEnvelope(participant_count=3), exclude=a)

    assert delivered == 2
    assert a.drain() == []
    assert b.drain() == [{"type": "participant_joined", "participantCount": 3}]
    assert c.drain() == [{"type": "participant_joined", "participantCount": 3}]


def test_deliver_silently_skips_closed_connections() -> None:
    a, b = Connection("a"), Connection("b")
    room = _room_with(a, b)
    b.close()

    delivered = MessageBroadcaster().deliver(room, ParticipantJoinedEnvelope(participant_count=2))

    assert delivered == 1
    assert len(a.drain()) == 1
    assert b.pending() == 0
    assert "b" in room.members


def test_full_outbox_closes_the_connection() -> None:
    stalled = Connection("stalled", outbox_maxsize=3)
    for i in range(3):
        assert stalled.send(_message(i))

    assert not stalled.send(_message(3))
    assert not stalled.is_open
    assert stalled.pending() == 3
