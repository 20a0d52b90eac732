## In-memory state
#
# **RoomStore** — room key -> Room
# - `Room.members` — connection id -> Connection handle
# - `Room.history` — most recent chat messages, bounded deque
# - `Room.created_at` — UTC datetime, never changes
#
# **ConnectionRoomIndex** — connection id -> room key (at most one)
#
# Invariant: a connection id is in `rooms[k].members` iff the index binds it to `k`.
# Every mutation of both structures happens while holding `RelayBackend.lock`.

import asyncio
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Deque, Dict, Iterator, List, Optional, Tuple

from connections import Connection
from constants import HISTORY_LIMIT, ROOM_KEY_MAX_ATTEMPTS
from errors import RoomKeyCollisionError
from logging_config import get_logger
from room_keys import generate_room_key
from schemas.envelopes import ChatMessage

logger = get_logger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Room:
    key: str
    created_at: datetime
    history: Deque[ChatMessage]
    members: Dict[str, Connection] = field(default_factory=dict)

    @property
    def participant_count(self) -> int:
        return len(self.members)

    @property
    def is_empty(self) -> bool:
        return not self.members


class RoomStore:
    def __init__(
        self,
        key_generator: Callable[[], str] = generate_room_key,
        clock: Callable[[], datetime] = utc_now,
        history_limit: int = HISTORY_LIMIT,
        max_key_attempts: int = ROOM_KEY_MAX_ATTEMPTS,
    ):
        self._rooms: Dict[str, Room] = {}
        self._generate_key = key_generator
        self._clock = clock
        self.history_limit = history_limit
        self.max_key_attempts = max_key_attempts

    def create(self) -> Room:
        for attempt in range(1, self.max_key_attempts + 1):
            key = self._generate_key()
            if key in self._rooms:
                logger.warning(f"Room key collision on {key} (attempt {attempt}/{self.max_key_attempts}), regenerating")
                continue
            room = Room(key=key, created_at=self._clock(), history=deque(maxlen=self.history_limit))
            self._rooms[key] = room
            logger.info(f"Room created: {key}")
            return room
        raise RoomKeyCollisionError(f"No free room key after {self.max_key_attempts} attempts")

    def get(self, key: str) -> Optional[Room]:
        return self._rooms.get(key)

    def delete(self, key: str) -> None:
        if self._rooms.pop(key, None) is not None:
            logger.info(f"Room {key} deleted")

    def sweep_idle(self, max_age: float) -> List[str]:
        """Remove empty rooms created more than `max_age` seconds ago."""
        cutoff = self._clock() - timedelta(seconds=max_age)
        stale = [key for key, room in self._rooms.items() if room.is_empty and room.created_at < cutoff]
        for key in stale:
            del self._rooms[key]
            logger.info(f"Cleaned up old empty room: {key}")
        return stale

    def __len__(self) -> int:
        return len(self._rooms)

    def __contains__(self, key: str) -> bool:
        return key in self._rooms


class ConnectionRoomIndex:
    def __init__(self):
        self._bindings: Dict[str, str] = {}

    def bind(self, connection_id: str, key: str) -> None:
        self._bindings[connection_id] = key

    def lookup(self, connection_id: str) -> Optional[str]:
        return self._bindings.get(connection_id)

    def unbind(self, connection_id: str) -> None:
        self._bindings.pop(connection_id, None)

    def items(self) -> Iterator[Tuple[str, str]]:
        return iter(list(self._bindings.items()))

    def __len__(self) -> int:
        return len(self._bindings)


class RelayBackend:
    """Shared relay state: rooms, connection bindings and the lock guarding both."""

    def __init__(self, rooms: Optional[RoomStore] = None, connections: Optional[ConnectionRoomIndex] = None):
        self.rooms = rooms if rooms is not None else RoomStore()
        self.connections = connections if connections is not None else ConnectionRoomIndex()
        # One lock for all rooms. Critical sections never await, so contention stays negligible.
        self.lock = asyncio.Lock()
        logger.info("Initialized in-memory relay backend")
