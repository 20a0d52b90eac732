"""Per-connection protocol state machine.

A connection is either idle or bound to exactly one room; the binding lives in
the backend's ConnectionRoomIndex. Every transition runs under the backend
lock and never awaits inside it, so membership changes, the participant count
read for notifications, and the queued broadcasts form one atomic step.
"""

from typing import Optional, Union

from backend import RelayBackend, Room
from broadcaster import MessageBroadcaster
from connections import Connection
from constants import DEFAULT_SENDER, HISTORY_REPLAY_COUNT, WELCOME_MESSAGE
from errors import InvalidEnvelopeError, RoomKeyCollisionError, UnknownEnvelopeTypeError
from logging_config import get_logger
from room_keys import generate_message_id
from schemas.envelopes import (
    ChatMessage,
    ConnectedEnvelope,
    CreateRoomEnvelope,
    ErrorEnvelope,
    JoinErrorEnvelope,
    JoinRoomEnvelope,
    LeaveRoomEnvelope,
    MessageEnvelope,
    ParticipantJoinedEnvelope,
    ParticipantLeftEnvelope,
    PingEnvelope,
    PongEnvelope,
    RoomCreatedEnvelope,
    RoomJoinedEnvelope,
    RoomLeftEnvelope,
    SendMessageEnvelope,
    parse_client_envelope,
    utc_timestamp,
)

logger = get_logger(__name__)

NOT_IN_ROOM = "Not in a room"
ROOM_NOT_FOUND = "Room not found"
CREATE_FAILED = "Failed to create room"


class SessionHandler:
    def __init__(
        self,
        connection: Connection,
        backend: RelayBackend,
        broadcaster: MessageBroadcaster,
        replay_count: int = HISTORY_REPLAY_COUNT,
        default_sender: str = DEFAULT_SENDER,
    ):
        self.connection = connection
        self.backend = backend
        self.broadcaster = broadcaster
        self.replay_count = replay_count
        self.default_sender = default_sender
        self._handlers = {
            CreateRoomEnvelope: self._create_room,
            JoinRoomEnvelope: self._join_room,
            SendMessageEnvelope: self._send_message,
            LeaveRoomEnvelope: self._leave_room,
            PingEnvelope: self._ping,
        }

    @property
    def connection_id(self) -> str:
        return self.connection.connection_id

    @property
    def room_key(self) -> Optional[str]:
        """Key of the room this connection is in, or None while idle."""
        return self.backend.connections.lookup(self.connection_id)

    def on_connect(self) -> None:
        self.connection.send(ConnectedEnvelope(message=WELCOME_MESSAGE))
        logger.info(f"New client connected: {self.connection_id}")

    async def on_message(self, raw: Union[str, bytes]) -> None:
        """Parse one inbound frame and run its transition.

        Envelope fields are validated before any state check, so a
        `send_message` without `text` is answered with the invalid-format
        error even from an idle connection, not with "Not in a room".
        """
        try:
            envelope = parse_client_envelope(raw)
        except (InvalidEnvelopeError, UnknownEnvelopeTypeError) as e:
            logger.debug(f"Rejected frame from {self.connection_id}: {e}")
            self.connection.send(ErrorEnvelope(error=e.reply))
            return

        logger.debug(f"Received {envelope.type} from {self.connection_id}")
        try:
            async with self.backend.lock:
                self._handlers[type(envelope)](envelope)
        except RoomKeyCollisionError as e:
            logger.error(f"Error processing {envelope.type} from {self.connection_id}: {e}", exc_info=True)
            self.connection.send(ErrorEnvelope(error=CREATE_FAILED))
        except Exception as e:
            logger.error(f"Error processing {envelope.type} from {self.connection_id}: {e}", exc_info=True)
            self.connection.send(ErrorEnvelope(error=InvalidEnvelopeError.reply))

    async def on_close(self) -> None:
        """Transport went away: leave the current room without replying."""
        self.connection.close()
        async with self.backend.lock:
            self._leave_current_room()
        logger.info(f"Client disconnected: {self.connection_id}")

    def on_error(self, exc: BaseException) -> None:
        # Cleanup is driven by on_close, which the transport always triggers afterwards
        logger.error(f"WebSocket error on {self.connection_id}: {exc}", exc_info=exc)

    # Transitions. Callers hold backend.lock.

    def _create_room(self, envelope: CreateRoomEnvelope) -> None:
        self._leave_current_room()
        room = self.backend.rooms.create()
        self._add_member(room)
        self.connection.send(RoomCreatedEnvelope(room_key=room.key))

    def _join_room(self, envelope: JoinRoomEnvelope) -> None:
        target_key = envelope.room_key.strip().upper()
        room = self.backend.rooms.get(target_key)
        if room is None:
            logger.info(f"Join failed for {self.connection_id}: room {target_key} not found")
            self.connection.send(JoinErrorEnvelope(error=ROOM_NOT_FOUND))
            return

        rejoining = self.room_key == target_key
        if not rejoining:
            self._leave_current_room()
            self._add_member(room)

        self.connection.send(RoomJoinedEnvelope(room_key=room.key, participant_count=room.participant_count))
        for message in self.broadcaster.recent_history(room, self.replay_count):
            self.connection.send(MessageEnvelope.from_message(message))
        if not rejoining:
            self.broadcaster.deliver(
                room, ParticipantJoinedEnvelope(participant_count=room.participant_count), exclude=self.connection
            )
        logger.info(f"Client {self.connection_id} joined room {room.key} ({room.participant_count} participants)")

    def _send_message(self, envelope: SendMessageEnvelope) -> None:
        key = self.room_key
        if key is None:
            self.connection.send(ErrorEnvelope(error=NOT_IN_ROOM))
            return
        room = self.backend.rooms.get(key)
        if room is None:
            self.backend.connections.unbind(self.connection_id)
            self.connection.send(ErrorEnvelope(error=ROOM_NOT_FOUND))
            return

        message = ChatMessage(
            id=generate_message_id(),
            text=envelope.text,
            sender=envelope.sender or self.default_sender,
            timestamp=utc_timestamp(),
        )
        self.broadcaster.record(room, message)
        self.broadcaster.deliver(room, MessageEnvelope.from_message(message))
        logger.debug(f"Message sent in room {room.key}: {message.text[:50]}")

    def _leave_room(self, envelope: LeaveRoomEnvelope) -> None:
        if self._leave_current_room():
            self.connection.send(RoomLeftEnvelope())

    def _ping(self, envelope: PingEnvelope) -> None:
        self.connection.send(PongEnvelope())

    def _add_member(self, room: Room) -> None:
        room.members[self.connection_id] = self.connection
        self.backend.connections.bind(self.connection_id, room.key)

    def _leave_current_room(self) -> bool:
        """Drop this connection from its room, notify the rest, delete the room if empty.

        Returns False when the connection was not in a room.
        """
        key = self.room_key
        if key is None:
            return False
        self.backend.connections.unbind(self.connection_id)

        room = self.backend.rooms.get(key)
        if room is None:
            return True
        room.members.pop(self.connection_id, None)
        if room.is_empty:
            self.backend.rooms.delete(key)
        else:
            self.broadcaster.deliver(
                room, ParticipantLeftEnvelope(participant_count=room.participant_count), exclude=self.connection
            )
        logger.info(f"Client {self.connection_id} left room {key}")
        return True
