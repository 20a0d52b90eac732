import os

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 8080))
RELOAD = os.getenv("RELOAD", "false").lower() in ("1", "true", "yes")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

# Reaper runs every 15 minutes and reclaims empty rooms older than an hour
REAPER_INTERVAL_SECONDS = float(os.getenv("REAPER_INTERVAL_SECONDS", 15 * 60))
IDLE_ROOM_MAX_AGE_SECONDS = float(os.getenv("IDLE_ROOM_MAX_AGE_SECONDS", 60 * 60))

HISTORY_LIMIT = int(os.getenv("HISTORY_LIMIT", 50))
HISTORY_REPLAY_COUNT = int(os.getenv("HISTORY_REPLAY_COUNT", 10))
DEFAULT_SENDER = os.getenv("DEFAULT_SENDER", "Anonymous")

ROOM_KEY_BYTES = 4  # 8 hex characters
ROOM_KEY_MAX_ATTEMPTS = int(os.getenv("ROOM_KEY_MAX_ATTEMPTS", 16))

WELCOME_MESSAGE = "Connected to messaging server"

# Frames queued for a client that is not reading; past this the connection is dropped
OUTBOX_MAXSIZE = int(os.getenv("OUTBOX_MAXSIZE", 256))
