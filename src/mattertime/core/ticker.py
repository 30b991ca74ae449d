"""One-second tick for a :class:`~mattertime.core.timer.WorkTimer`.

The ticker is a single repeating task on the host's event loop.  It is the
only code besides the timer's own callers that touches the timer, and it
runs on the same loop, so no locking is involved.
"""

from __future__ import annotations

import asyncio
import logging

from mattertime.core.timer import TimerWarningType, WorkTimer

logger = logging.getLogger(__name__)

TICK_INTERVAL = 1.0


class Ticker:
    """Drives ``WorkTimer.tick()`` and performs auto-stop when it is due."""

    def __init__(self, timer: WorkTimer, interval: float = TICK_INTERVAL) -> None:
        self._timer = timer
        self._interval = interval
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Schedule the tick loop on the running event loop."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def cancel(self) -> None:
        """Stop ticking and wait for the loop to finish."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.tick_once()
            except Exception:
                logger.exception("timer tick failed")

    async def tick_once(self) -> None:
        warning = self._timer.tick()
        if warning is not None and warning.type is TimerWarningType.AUTO_STOPPED:
            logger.info("auto-stopping timer after %ds", warning.elapsed_seconds)
            await self._timer.stop()
