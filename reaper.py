import asyncio
from typing import List, Optional

from backend import RelayBackend
from constants import IDLE_ROOM_MAX_AGE_SECONDS, REAPER_INTERVAL_SECONDS
from logging_config import get_logger

logger = get_logger(__name__)


class IdleRoomReaper:
    """Background sweep that reclaims rooms left empty past the idle threshold.

    Empty rooms are normally deleted the moment their last member leaves; the
    sweep catches rooms that were created but never joined.
    """

    def __init__(
        self,
        backend: RelayBackend,
        interval: float = REAPER_INTERVAL_SECONDS,
        max_age: float = IDLE_ROOM_MAX_AGE_SECONDS,
    ):
        self.backend = backend
        self.interval = interval
        self.max_age = max_age
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        logger.info(f"Idle room reaper started: interval={self.interval}s, max_age={self.max_age}s")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Idle room reaper stopped")

    async def run_once(self) -> List[str]:
        # Same lock as join/leave, so a room cannot gain a member mid-sweep
        async with self.backend.lock:
            removed = self.backend.rooms.sweep_idle(self.max_age)
        if removed:
            logger.info(f"Reaper removed {len(removed)} idle rooms, {len(self.backend.rooms)} active")
        return removed

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Idle room sweep failed: {e}", exc_info=True)
