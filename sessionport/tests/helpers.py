import asyncio
from typing import Any, Callable

from sessionport import SessionManager


class Recorder:
    """Sender that never answers."""

    def __init__(self) -> None:
        self.sent: list[Any] = []

    def __call__(self, message: Any) -> None:
        self.sent.append(message)


class EchoPeer:
    """Sender that answers each request with ``value + 1`` after ``delay`` seconds."""

    def __init__(self, delay: float = 0.01, port: str = "default") -> None:
        self.delay = delay
        self.port = port
        self.manager: SessionManager | None = None
        self.sent: list[dict[str, Any]] = []

    def __call__(self, message: dict[str, Any]) -> None:
        self.sent.append(message)
        reply = {"sid": message["sid"], "type": "response", "value": message["value"] + 1}
        loop = asyncio.get_running_loop()
        loop.call_later(self.delay, self._deliver, reply)

    def _deliver(self, reply: dict[str, Any]) -> None:
        assert self.manager is not None
        self.manager.dispatch(reply, self.port)


async def wait_for(predicate: Callable[[], bool], *, timeout: float = 1.0, interval: float = 0.01) -> bool:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if predicate():
            return True
        await asyncio.sleep(interval)
    return predicate()


