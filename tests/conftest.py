"""Shared fixtures for relay tests."""

from __future__ import annotations

from typing import Callable

import pytest

from backend import RelayBackend, RoomStore
from broadcaster import MessageBroadcaster
from relay_helpers import FakeClock, RecordingConnection
from session import SessionHandler


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def backend(clock: FakeClock) -> RelayBackend:
    return RelayBackend(rooms=RoomStore(clock=clock))


@pytest.fixture
def broadcaster() -> MessageBroadcaster:
    return MessageBroadcaster()


@pytest.fixture
def open_session(backend: RelayBackend, broadcaster: MessageBroadcaster) -> Callable[..., SessionHandler]:
    def _open(connection_id: str | None = None) -> SessionHandler:
        return SessionHandler(RecordingConnection(connection_id), backend, broadcaster)

    return _open
