import asyncio
import json
import uuid
from typing import Awaitable, Callable, Optional, Union

from constants import OUTBOX_MAXSIZE
from logging_config import get_logger
from schemas.envelopes import WireModel

logger = get_logger(__name__)


class Connection:
    """Handle for one client transport, as held in a room's membership.

    Outbound envelopes are serialized and queued; a separate pump task writes
    them to the transport so a slow or dead peer never blocks the sender. A
    peer whose outbox fills up is closed and skipped from then on.
    """

    def __init__(self, connection_id: Optional[str] = None, outbox_maxsize: int = OUTBOX_MAXSIZE):
        self.connection_id = connection_id or str(uuid.uuid4())
        self._outbox: "asyncio.Queue[str]" = asyncio.Queue(maxsize=outbox_maxsize)
        self._open = True

    @property
    def is_open(self) -> bool:
        return self._open

    def send(self, envelope: Union[WireModel, dict]) -> bool:
        """Queue an envelope for delivery. Returns False if the connection is closed."""
        if not self._open:
            return False
        payload = envelope.to_wire() if isinstance(envelope, WireModel) else envelope
        try:
            self._outbox.put_nowait(json.dumps(payload))
        except asyncio.QueueFull:
            logger.warning(
                f"Outbox full for connection {self.connection_id} ({self._outbox.maxsize} frames), closing handle"
            )
            self.close()
            return False
        return True

    def close(self) -> None:
        self._open = False

    async def pump(self, send_text: Callable[[str], Awaitable[None]]) -> None:
        """Write queued payloads to the transport until cancelled or the transport fails."""
        while True:
            text = await self._outbox.get()
            try:
                await send_text(text)
            except Exception as e:
                logger.warning(f"Send to connection {self.connection_id} failed, closing handle: {e}")
                self.close()
                return

    def __repr__(self) -> str:
        state = "open" if self._open else "closed"
        return f"<Connection {self.connection_id} {state}>"
