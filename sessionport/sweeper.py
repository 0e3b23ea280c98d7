"""Self-rescheduling background task driving a port's liveness sweep."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Callable, Optional

LOGGER = logging.getLogger(__name__)


class Sweeper:
    """Runs ``callback`` every ``interval()`` seconds until stopped.

    The interval is re-read before each wait so option changes take effect on
    the next run. The next run is scheduled after the previous one finished,
    so drift accumulates rather than runs overlapping.
    """

    def __init__(self, callback: Callable[[], None], interval: Callable[[], float], *, name: str) -> None:
        self._callback = callback
        self._interval = interval
        self._name = name
        self._task: Optional[asyncio.Task[None]] = None
        self._stopped = False

    @property
    def running(self) -> bool:
        return not self._stopped and self._task is not None and not self._task.done()

    def start(self) -> bool:
        """Start the task on the running loop; returns False when no loop is running."""

        if self._stopped or self.running:
            return self.running
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return False
        self._task = loop.create_task(self._run(), name=self._name)
        return True

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(max(self._interval(), 0.0))
            try:
                self._callback()
            except Exception:  # noqa: BLE001
                LOGGER.exception("Sweep %s crashed", self._name)

    def stop(self) -> None:
        self._stopped = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def aclose(self) -> None:
        self.stop()
        task = self._task
        self._task = None
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task
