"""Fixed-interval async ticker owned by a service."""

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class Ticker:
    """Runs ``callback`` every ``interval`` seconds on one asyncio task.

    ``stop()`` cancels the task and waits for it, so no timer outlives its
    owner. A failing callback is logged and the next tick still happens.
    """

    def __init__(self, interval: float, callback: Callable[[], Awaitable[None]],
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep, name: str = "ticker"):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._interval = interval
        self._callback = callback
        self._sleep = sleep
        self._name = name
        self._task: asyncio.Task | None = None
        self.ticks = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=self._name)
        logger.debug(f"{self._name} started ({self._interval}s interval)")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug(f"{self._name} stopped after {self.ticks} ticks")

    async def _run(self) -> None:
        while True:
            await self._sleep(self._interval)
            self.ticks += 1
            try:
                await self._callback()
            except Exception:
                logger.exception(f"{self._name} callback failed")
