from pydantic import BaseModel


class CreateRoomResponse(BaseModel):
    room_key: str
    created_at: str


class RoomDetailsResponse(BaseModel):
    room_key: str
    created_at: str
    participant_count: int
    message_count: int


class HealthResponse(BaseModel):
    status: str
    rooms: int
    connections: int
