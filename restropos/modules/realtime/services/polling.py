# restropos/modules/realtime/services/polling.py

"""
Timed snapshot refresh.

Runs alongside the push channel, never instead of it: a missed push or a
silently dead socket is corrected at the next tick.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from restropos.core.exceptions import AuthenticationError, RestroPOSError

logger = logging.getLogger(__name__)


class PeriodicRefresher:
    """Calls ``refresh`` every ``interval_seconds`` until stopped or the session expires"""

    def __init__(
        self,
        refresh: Callable[[], Awaitable[object]],
        interval_seconds: float,
        name: str = "refresh",
        on_error: Optional[Callable[[RestroPOSError], None]] = None,
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.refresh = refresh
        self.interval_seconds = interval_seconds
        self.name = name
        self.on_error = on_error
        self.tick_count = 0
        self.failure_count = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the timer; a running timer is left untouched"""
        if self.running:
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        logger.info(f"Starting periodic refresh {self.name} every {self.interval_seconds}s")
        try:
            while True:
                await asyncio.sleep(self.interval_seconds)
                self.tick_count += 1
                try:
                    await self.refresh()
                except AuthenticationError as e:
                    # 401 is fatal to the session
                    self.failure_count += 1
                    logger.warning(f"Periodic refresh {self.name} stopped: {e.detail}")
                    if self.on_error:
                        self.on_error(e)
                    return
                except RestroPOSError as e:
                    self.failure_count += 1
                    logger.warning(f"Periodic refresh {self.name} failed: {e.detail}")
                    if self.on_error:
                        self.on_error(e)
        except asyncio.CancelledError:
            logger.info(f"Periodic refresh {self.name} cancelled")
            raise
