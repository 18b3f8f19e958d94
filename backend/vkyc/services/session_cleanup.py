"""
Background sweep for abandoned verification sessions

Safety net for sessions that were abandoned without any further API call,
so expire-on-read never fires for them. The sweeper owns one asyncio task
started and stopped by the application lifespan.
"""
import asyncio
import logging
from typing import Optional

from vkyc.services.session_manager import SessionManager

logger = logging.getLogger(__name__)


class SessionSweeper:
    """Periodically marks stale pending sessions as incomplete"""

    def __init__(
        self,
        session_manager: SessionManager,
        interval_seconds: int = 15 * 60,
        retry_delay_seconds: int = 60,
    ):
        self.session_manager = session_manager
        self.interval_seconds = interval_seconds
        self.retry_delay_seconds = retry_delay_seconds
        self._task: Optional[asyncio.Task] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> int:
        return await self.session_manager.sweep_stale_sessions()

    async def _run(self) -> None:
        logger.info(f"Starting session sweep task (every {self.interval_seconds}s)")
        while self._running:
            try:
                await self.run_once()
                await asyncio.sleep(self.interval_seconds)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # One failed iteration must not stop the next one
                logger.error(f"Error in session sweep task: {e}", exc_info=True)
                await asyncio.sleep(self.retry_delay_seconds)

    def start(self) -> None:
        if self.running:
            return
        self._running = True
        self._task = asyncio.create_task(self._run(), name="session-sweeper")

    async def stop(self) -> None:
        self._running = False
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            logger.info("Session sweep task stopped")
        self._task = None
