from typing import List, Optional

from backend import Room
from connections import Connection
from constants import HISTORY_REPLAY_COUNT
from logging_config import get_logger
from schemas.envelopes import ChatMessage, WireModel

logger = get_logger(__name__)


class MessageBroadcaster:
    """Fans envelopes out to room members and keeps each room's rolling history."""

    def deliver(self, room: Room, envelope: WireModel, exclude: Optional[Connection] = None) -> int:
        """Queue `envelope` for every member except `exclude`; closed connections are skipped."""
        delivered = 0
        for connection in list(room.members.values()):
            if connection is exclude:
                continue
            if connection.send(envelope):
                delivered += 1
            else:
                logger.debug(f"Skipped closed connection {connection.connection_id} in room {room.key}")
        logger.debug(f"Delivered {envelope.type} to {delivered} connections in room {room.key}")
        return delivered

    def record(self, room: Room, message: ChatMessage) -> None:
        # history is a bounded deque; the oldest entry drops off once full
        room.history.append(message)

    def recent_history(self, room: Room, n: int = HISTORY_REPLAY_COUNT) -> List[ChatMessage]:
        if n <= 0:
            return []
        return list(room.history)[-n:]
