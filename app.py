import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from backend import RelayBackend
from broadcaster import MessageBroadcaster
from connections import Connection
from constants import IDLE_ROOM_MAX_AGE_SECONDS, LOG_FILE, LOG_LEVEL, REAPER_INTERVAL_SECONDS
from logging_config import get_logger, setup_logging
from reaper import IdleRoomReaper
from routers.rooms import rooms_router
from schemas.rooms import HealthResponse
from session import SessionHandler

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    reaper = IdleRoomReaper(app.state.backend, interval=REAPER_INTERVAL_SECONDS, max_age=IDLE_ROOM_MAX_AGE_SECONDS)
    app.state.reaper = reaper
    reaper.start()
    logger.info(f"Relay server ready, active rooms: {len(app.state.backend.rooms)}")
    yield
    logger.info("Shutting down relay server...")
    # uvicorn closes open WebSockets itself; each endpoint's finally block then leaves its room
    await reaper.stop()
    logger.info("Relay server closed")


app = FastAPI(title="Ephemeral Relay", lifespan=lifespan)

# In-memory state for this process. Rooms are never shared across instances.
app.state.backend = RelayBackend()
app.state.broadcaster = MessageBroadcaster()
# Format: {connection_id: Connection} for every open WebSocket
app.state.connections = {}

# Configure CORS to allow all origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allow all origins
    allow_credentials=True,
    allow_methods=["*"],  # Allow all HTTP methods
    allow_headers=["*"],  # Allow all headers
)

app.include_router(rooms_router)

logger.info("FastAPI application initialized")


@app.get("/health", response_model=HealthResponse)
async def health(request: Request):
    state = request.app.state
    return HealthResponse(status="ok", rooms=len(state.backend.rooms), connections=len(state.connections))


@app.websocket("/")
@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """Relay WebSocket: one SessionHandler per connection, fed every inbound frame."""
    state = websocket.app.state
    await websocket.accept()

    connection = Connection()
    state.connections[connection.connection_id] = connection
    session = SessionHandler(connection, state.backend, state.broadcaster)
    writer = asyncio.create_task(connection.pump(websocket.send_text))
    session.on_connect()

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                logger.debug(f"WebSocket disconnected normally for connection {connection.connection_id}")
                break
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes")
            await session.on_message(raw)
    except WebSocketDisconnect:
        logger.debug(f"WebSocket disconnected for connection {connection.connection_id}")
    except Exception as e:
        session.on_error(e)
    finally:
        await session.on_close()
        state.connections.pop(connection.connection_id, None)
        writer.cancel()
        try:
            await writer
        except asyncio.CancelledError:
            pass
