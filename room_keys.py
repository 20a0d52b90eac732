import secrets
import uuid

from constants import ROOM_KEY_BYTES


def generate_room_key(num_bytes: int = ROOM_KEY_BYTES) -> str:
    # 4 random bytes -> 8 uppercase hex characters
    return secrets.token_hex(num_bytes).upper()


def generate_message_id() -> str:
    return str(uuid.uuid4())
