"""A single outstanding send-and-await-reply operation."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class PendingExchange:
    future: asyncio.Future[Any]
    started_at: float
    attempt: int = 0
    timer: Optional[asyncio.TimerHandle] = field(default=None, repr=False)

    @property
    def settled(self) -> bool:
        return self.future.done()

    def arm(self, delay: float, callback) -> None:
        """Schedule ``callback`` after ``delay`` seconds unless the exchange settles first."""

        self.disarm()
        loop = self.future.get_loop()
        self.timer = loop.call_later(delay, callback)

    def disarm(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None

    def resolve(self, message: Any) -> bool:
        self.disarm()
        if self.future.done():
            return False
        self.future.set_result(message)
        return True

    def reject(self, exc: BaseException) -> bool:
        self.disarm()
        if self.future.done():
            return False
        self.future.set_exception(exc)
        return True
