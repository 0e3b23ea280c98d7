"""A namespaced pool of sessions sharing one id space and one sender."""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Generic, Optional, TypeVar

from sessionport.envelope import coerce_sid, is_session_message, read_sid
from sessionport.errors import SessionOverflowError
from sessionport.options import PortOptions, SessionOptions
from sessionport.session import Session
from sessionport.sweeper import Sweeper

LOGGER = logging.getLogger(__name__)

M = TypeVar("M")

CLEAR_BEHAVIORS = ("abort", "cancel", "timeout")


class SessionPort(Generic[M]):
    """Owns the session table of one endpoint.

    Ids are allocated from ``1..max_session_count`` and reused once a
    session leaves the table. A background sweep, running every
    ``session_timeout_ms / 2``, times out exchanges that waited too long and
    evicts idle sessions older than ``session_max_life_ms``.

    All table mutations happen synchronously on the event loop thread; the
    port is not safe to share across threads.
    """

    def __init__(self, options: PortOptions) -> None:
        self.options = options
        self.sessions: Dict[str, Session[M]] = {}
        self._id_seq = 1
        self._sweeper = Sweeper(
            self.inspect,
            lambda: self.options.session_timeout_ms / 2000.0,
            name=f"session-sweep-{options.name}",
        )
        self._sweeper.start()
        LOGGER.info(
            "Session port %s ready (max_sessions=%s timeout_ms=%s max_life_ms=%s)",
            options.name,
            options.max_session_count,
            options.session_timeout_ms,
            options.session_max_life_ms,
        )

    @property
    def name(self) -> str:
        return self.options.name

    @property
    def sweeping(self) -> bool:
        return self._sweeper.running

    def __len__(self) -> int:
        return len(self.sessions)

    def is_free(self, sid: int | str) -> bool:
        return str(sid) not in self.sessions

    def _get_free_session_id(self) -> int:
        limit = self.options.max_session_count
        start = min(max(self._id_seq, 1), limit)
        for candidate in (*range(start, limit + 1), *range(1, start)):
            if self.is_free(candidate):
                self._id_seq = candidate
                return candidate
        return self._reclaim_session_id()

    def _reclaim_session_id(self) -> int:
        raw = self.options.on_session_overflow(self)
        sid = coerce_sid(raw)
        if sid is None or not 1 <= sid <= self.options.max_session_count:
            raise SessionOverflowError(
                f"Overflow policy for port {self.name!r} returned invalid session id {raw!r}"
            )
        occupant = self.sessions.pop(str(sid), None)
        if occupant is not None:
            LOGGER.warning("Session port %s full; evicting session %s", self.name, sid)
            occupant.cancel()
            occupant._detach()
        self._id_seq = sid
        return sid

    def create(
        self,
        *,
        timeout_ms: Optional[int] = None,
        retry_count: Optional[int] = None,
        retry_interval_ms: Optional[int] = None,
    ) -> Session[M]:
        """Allocate an id and register a new session."""

        self._sweeper.start()
        sid = self._get_free_session_id()
        options = SessionOptions(
            timeout_ms=timeout_ms,
            retry_count=retry_count if retry_count is not None else self.options.retry_count,
            retry_interval_ms=retry_interval_ms if retry_interval_ms is not None else self.options.retry_interval_ms,
        )
        session: Session[M] = Session(self, sid, options)
        self.sessions[str(sid)] = session
        LOGGER.debug("Created session %s on port %s", sid, self.name)
        return session

    def send(self, message: Any) -> None:
        self.options.sender(message)

    def inspect(self) -> None:
        """Time out stale exchanges and evict sessions idle beyond their max life."""

        now = time.monotonic()
        expired: list[Session[M]] = []
        for session in list(self.sessions.values()):
            try:
                if session.retrying:
                    continue
                elapsed_ms = (now - session.last_send_time) * 1000.0
                if session.pending:
                    if elapsed_ms > self.options.session_timeout_ms:
                        session.timeout()
                elif elapsed_ms > self.options.session_max_life_ms:
                    session.end()
                    expired.append(session)
            except Exception:  # noqa: BLE001
                LOGGER.exception("Failed to inspect session %s on port %s", session.id, self.name)
        for session in expired:
            LOGGER.info("Evicted idle session %s on port %s", session.id, self.name)
            self._discard(session)

    def clear(self, behavior: str = "abort") -> None:
        """Settle every session with ``behavior`` and empty the table."""

        if behavior not in CLEAR_BEHAVIORS:
            raise ValueError(f"Unknown clear behavior {behavior!r}; expected one of {CLEAR_BEHAVIORS}")
        for session in list(self.sessions.values()):
            getattr(session, behavior)()
            session._detach()
        self.sessions.clear()
        self._id_seq = 1

    def cancel(self) -> None:
        for session in list(self.sessions.values()):
            session.cancel()

    def timeout(self) -> None:
        for session in list(self.sessions.values()):
            session.timeout()

    def abort(self, error: Optional[BaseException] = None) -> None:
        for session in list(self.sessions.values()):
            session.abort(error)

    def remove(self, sid: int | str) -> None:
        self.sessions.pop(str(sid), None)

    def _discard(self, session: Session[M]) -> None:
        key = str(session.id)
        if self.sessions.get(key) is session:
            del self.sessions[key]

    async def request(
        self,
        message: M,
        *,
        timeout_ms: Optional[int] = None,
        retry_count: Optional[int] = None,
        retry_interval_ms: Optional[int] = None,
    ) -> Any:
        """Send ``message`` on a one-shot session and return the reply."""

        session = self.create(
            timeout_ms=timeout_ms,
            retry_count=retry_count,
            retry_interval_ms=retry_interval_ms,
        )
        try:
            return await session.send(message)
        finally:
            session.end()

    def is_session(self, message: Any) -> bool:
        return is_session_message(message, self.options.session_id_name)

    def get(self, message: Any) -> Optional[Session[M]]:
        if not self.is_session(message):
            return None
        return self.sessions.get(str(read_sid(message, self.options.session_id_name)))

    def destroy(self) -> None:
        self.clear()
        self._sweeper.stop()
        LOGGER.info("Session port %s destroyed", self.name)

    async def aclose(self) -> None:
        self.destroy()
        await self._sweeper.aclose()
