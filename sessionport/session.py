"""Request/reply correlation for one logical conversation.

A session owns at most one outstanding exchange. ``send`` stamps the
session id onto the message, hands it to the port's sender and suspends
until one of the following settles the exchange:

- ``next`` with the peer's reply
- ``timeout`` (sweep-driven or from the per-exchange timer)
- ``cancel`` / ``abort`` from the caller
- ``end`` while the exchange is still pending
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Any, Generic, Optional, TypeVar

from sessionport.envelope import stamp
from sessionport.errors import (
    SessionAbortError,
    SessionCancelError,
    SessionError,
    SessionInvalidError,
    SessionTimeoutError,
)
from sessionport.exchange import PendingExchange
from sessionport.options import SessionOptions

if TYPE_CHECKING:
    from sessionport.port import SessionPort

LOGGER = logging.getLogger(__name__)

M = TypeVar("M")


class Session(Generic[M]):
    """One conversation identified by ``id`` within its port."""

    def __init__(self, port: "SessionPort[M]", sid: int, options: Optional[SessionOptions] = None) -> None:
        self.port = port
        self.id = sid
        self.options = options or SessionOptions()
        self.pending = False
        self.retrying = False
        self.destroyed = False
        self.last_send_time = time.monotonic()
        self._exchange: Optional[PendingExchange] = None
        self._halt_error: Optional[BaseException] = None
        self._active_call: Optional[object] = None

    def __repr__(self) -> str:
        return (
            f"Session(port={self.port.name!r}, id={self.id}, pending={self.pending}, "
            f"retrying={self.retrying}, destroyed={self.destroyed})"
        )

    @property
    def exchange(self) -> Optional[PendingExchange]:
        return self._exchange

    def _assert_valid(self) -> None:
        if self.destroyed:
            raise SessionInvalidError(f"Session {self.id} on port {self.port.name!r} has been destroyed")

    async def send(
        self,
        message: M,
        *,
        timeout_ms: Optional[int] = None,
        retry_count: Optional[int] = None,
        retry_interval_ms: Optional[int] = None,
    ) -> Any:
        """Send ``message`` and return the reply passed to ``next``.

        With a retry count above zero the message is re-sent after a timeout
        or sender failure, waiting ``retry_interval_ms`` between attempts.
        An explicit ``cancel``, ``abort`` or ``end`` stops further attempts.
        """

        self._assert_valid()
        call = SessionOptions(
            timeout_ms=timeout_ms,
            retry_count=retry_count,
            retry_interval_ms=retry_interval_ms,
        )
        effective = self.options.merged(call)
        attempts = (effective.retry_count if effective.retry_count is not None else self.port.options.retry_count) + 1
        interval_ms = (
            effective.retry_interval_ms
            if effective.retry_interval_ms is not None
            else self.port.options.retry_interval_ms
        )
        self._halt_error = None
        token = object()
        self._active_call = token
        self.retrying = False
        if attempts == 1:
            return await self._send(message, effective.timeout_ms)

        last_error: Optional[BaseException] = None
        try:
            for attempt in range(attempts):
                if attempt > 0:
                    self.retrying = True
                    LOGGER.warning(
                        "Retrying session %s on port %s (attempt %s/%s)",
                        self.id,
                        self.port.name,
                        attempt + 1,
                        attempts,
                    )
                try:
                    return await self._send(message, effective.timeout_ms, attempt=attempt)
                except SessionError as exc:
                    last_error = exc
                if self._halt_error is not None or self._active_call is not token:
                    break
                if attempt < attempts - 1:
                    await asyncio.sleep(interval_ms / 1000.0)
                    if self._active_call is not token:
                        raise last_error
                    if self._halt_error is not None:
                        raise self._halt_error
            if last_error is not None:
                raise last_error
            raise SessionAbortError()
        finally:
            if self._active_call is token:
                self.retrying = False

    async def _send(self, message: M, timeout_ms: Optional[int], *, attempt: int = 0) -> Any:
        """Perform a single attempt; no retry."""

        envelope = stamp(message, self.port.options.session_id_name, self.id)
        previous = self._exchange
        if previous is not None and not previous.settled:
            LOGGER.warning("Session %s already has a pending exchange; cancelling it", self.id)
            previous.reject(SessionCancelError("Superseded by a newer send on the same session"))

        loop = asyncio.get_running_loop()
        self.pending = True
        self.last_send_time = time.monotonic()
        exchange = PendingExchange(
            future=loop.create_future(),
            started_at=self.last_send_time,
            attempt=attempt,
        )
        self._exchange = exchange
        try:
            self.port.send(envelope)
        except Exception as exc:  # noqa: BLE001
            LOGGER.debug("Sender failed for session %s: %s", self.id, exc)
            self._settle_failure(exchange, SessionAbortError(exc))
        else:
            if not timeout_ms and self.retrying:
                timeout_ms = self.port.options.session_timeout_ms
            if timeout_ms and not exchange.settled:
                exchange.arm(timeout_ms / 1000.0, lambda: self._expire(exchange))
        return await exchange.future

    def _expire(self, exchange: PendingExchange) -> None:
        if exchange is not self._exchange:
            return
        self.timeout()

    def _settle_failure(self, exchange: Optional[PendingExchange], exc: BaseException) -> bool:
        self.pending = False
        if exchange is None:
            return False
        return exchange.reject(exc)

    def timeout(self) -> None:
        if self._settle_failure(self._exchange, SessionTimeoutError()):
            LOGGER.debug("Session %s on port %s timed out", self.id, self.port.name)

    def cancel(self) -> None:
        exc = SessionCancelError()
        self._halt_error = exc
        if self._settle_failure(self._exchange, exc):
            LOGGER.debug("Session %s on port %s cancelled", self.id, self.port.name)

    def abort(self, error: Optional[BaseException] = None) -> None:
        exc: BaseException
        if isinstance(error, SessionError):
            exc = error
        else:
            exc = SessionAbortError(error)
        self._halt_error = exc
        if self._settle_failure(self._exchange, exc):
            LOGGER.debug("Session %s on port %s aborted: %s", self.id, self.port.name, exc)

    def next(self, message: Any) -> None:
        """Resolve the outstanding exchange with ``message`` as received."""

        self.pending = False
        exchange = self._exchange
        if exchange is None or not exchange.resolve(message):
            LOGGER.debug("Session %s received a reply with no pending exchange; ignoring", self.id)

    def post(self, message: M) -> None:
        """Send ``message`` without waiting for a reply."""

        self._assert_valid()
        envelope = stamp(message, self.port.options.session_id_name, self.id)
        self.last_send_time = time.monotonic()
        self.port.send(envelope)

    def end(self) -> None:
        """Finish the session; its id is released on the next loop iteration."""

        if self.pending:
            self.cancel()
        self._detach()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.port._discard(self)
        else:
            loop.call_soon(self.port._discard, self)

    def _detach(self) -> None:
        """Mark the session destroyed and stop any retry loop still running on it."""

        self.destroyed = True
        if self._halt_error is None:
            self._halt_error = SessionInvalidError(f"Session {self.id} on port {self.port.name!r} has been destroyed")
