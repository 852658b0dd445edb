"""
Timers - Repeating asyncio ticker with an explicit start/stop lifecycle
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional


logger = logging.getLogger(__name__)


class Ticker:
    """Awaits an async callback every `interval` seconds until stopped

    Ticks never overlap: the next sleep starts once the previous tick returns.
    stop() cancels the schedule together with a tick still in flight; only the
    local await is abandoned, whatever the tick sent to the server stays sent.
    A tick that stops its own ticker is allowed to finish, and the schedule
    ends once it returns.
    """

    def __init__(self, interval: float, callback: Callable[[], Awaitable[None]], name: str = 'ticker'):
        if interval <= 0:
            raise ValueError(f"Ticker interval must be positive, got {interval}")
        self.interval = interval
        self.callback = callback
        self.name = name
        self.ticks = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)
        logger.debug(f"{self.name}: started (every {self.interval}s)")

    def stop(self) -> None:
        if self._task is None:
            return
        if self._task is not asyncio.current_task():
            self._task.cancel()
        self._task = None
        logger.debug(f"{self.name}: stopped after {self.ticks} ticks")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.ticks += 1
            try:
                await self.callback()
            except asyncio.CancelledError:
                raise
            except Exception as error:
                # A failing tick must not end the schedule
                logger.exception(f"{self.name}: tick failed: {error}")

            # Stopped from inside the tick
            if self._task is not asyncio.current_task():
                return
