"""
Periodic Ticker
===============

Cancellable fixed-interval timer owned by the swap orchestrator.

The callback is synchronous and must not block: it only decides whether
to dispatch work. stop() cancels the timer task immediately, without
awaiting, so no tick can fire after it returns.
"""

import asyncio
import logging
from typing import Callable, Optional


logger = logging.getLogger(__name__)


class PeriodicTicker:
    """
    Calls `callback` every `interval` seconds until stopped.

    Attributes:
        interval: Seconds between ticks
        ticks: Number of ticks fired since creation
    """

    def __init__(self, interval: float, callback: Callable[[], object], name: str = "ticker") -> None:
        if interval <= 0:
            raise ValueError("interval must be > 0")

        self.interval = interval
        self.name = name
        self.ticks: int = 0
        self._callback = callback
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start ticking. No-op if already running."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)
        logger.debug(f"Ticker {self.name} started (interval={self.interval}s)")

    def stop(self) -> None:
        """Stop ticking immediately."""
        if self._task is None:
            return
        self._task.cancel()
        self._task = None
        logger.debug(f"Ticker {self.name} stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.ticks += 1
            try:
                self._callback()
            except Exception as e:
                logger.error(f"Ticker {self.name} callback failed: {e}")
