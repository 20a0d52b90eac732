"""Wire envelopes exchanged over the relay WebSocket.

Every frame is a UTF-8 JSON object with a ``type`` discriminator. Field names
are camelCase on the wire and snake_case in Python.
"""

import json
from datetime import datetime, timezone
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from errors import InvalidEnvelopeError, UnknownEnvelopeTypeError


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)


# Client -> Server

class CreateRoomEnvelope(WireModel):
    type: Literal["create_room"]


class JoinRoomEnvelope(WireModel):
    type: Literal["join_room"]
    room_key: str


class SendMessageEnvelope(WireModel):
    type: Literal["send_message"]
    text: str
    sender: Optional[str] = None


class LeaveRoomEnvelope(WireModel):
    type: Literal["leave_room"]


class PingEnvelope(WireModel):
    type: Literal["ping"]


ClientEnvelope = Annotated[
    Union[CreateRoomEnvelope, JoinRoomEnvelope, SendMessageEnvelope, LeaveRoomEnvelope, PingEnvelope],
    Field(discriminator="type"),
]

CLIENT_ENVELOPE_TYPES = frozenset({"create_room", "join_room", "send_message", "leave_room", "ping"})

_client_envelope_adapter = TypeAdapter(ClientEnvelope)


def parse_client_envelope(raw) -> ClientEnvelope:
    """Decode one inbound frame into a client envelope.

    Raises InvalidEnvelopeError for frames that are not a JSON object or whose
    fields do not match their type, and UnknownEnvelopeTypeError when the
    ``type`` is missing or not one the relay handles.
    """
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise InvalidEnvelopeError("Frame is not valid UTF-8") from exc

    try:
        data = json.loads(raw)
    except (TypeError, json.JSONDecodeError) as exc:
        raise InvalidEnvelopeError("Frame is not valid JSON") from exc

    if not isinstance(data, dict):
        raise InvalidEnvelopeError("Envelope must be a JSON object")

    envelope_type = data.get("type")
    if not isinstance(envelope_type, str) or envelope_type not in CLIENT_ENVELOPE_TYPES:
        raise UnknownEnvelopeTypeError(envelope_type)

    try:
        return _client_envelope_adapter.validate_python(data)
    except ValidationError as exc:
        raise InvalidEnvelopeError(f"Invalid {envelope_type} envelope: {exc.error_count()} error(s)") from exc


# Server -> Client

def utc_timestamp() -> str:
    # e.g. 2025-01-31T12:00:00.123Z
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ChatMessage(WireModel):
    id: str
    text: str
    sender: str
    timestamp: str


class ConnectedEnvelope(WireModel):
    type: Literal["connected"] = "connected"
    message: str
    success: bool = True


class RoomCreatedEnvelope(WireModel):
    type: Literal["room_created"] = "room_created"
    room_key: str
    success: bool = True


class RoomJoinedEnvelope(WireModel):
    type: Literal["room_joined"] = "room_joined"
    room_key: str
    success: bool = True
    participant_count: int


class JoinErrorEnvelope(WireModel):
    type: Literal["join_error"] = "join_error"
    error: str
    success: bool = False


class MessageEnvelope(ChatMessage):
    type: Literal["message"] = "message"

    @classmethod
    def from_message(cls, message: ChatMessage) -> "MessageEnvelope":
        return cls(**message.model_dump())


class ParticipantJoinedEnvelope(WireModel):
    type: Literal["participant_joined"] = "participant_joined"
    participant_count: int


class ParticipantLeftEnvelope(WireModel):
    type: Literal["participant_left"] = "participant_left"
    participant_count: int


class RoomLeftEnvelope(WireModel):
    type: Literal["room_left"] = "room_left"
    success: bool = True


class ErrorEnvelope(WireModel):
    type: Literal["error"] = "error"
    error: str
    success: bool = False


class PongEnvelope(WireModel):
    type: Literal["pong"] = "pong"
