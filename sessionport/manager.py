"""Registry of session ports and inbound message routing."""

from __future__ import annotations

import logging
from typing import Any, Dict, Generic, Optional, TypeVar

from sessionport.config import SessionSettings
from sessionport.envelope import is_session_message, read_sid
from sessionport.options import PortOptions, Sender
from sessionport.port import SessionPort
from sessionport.session import Session

LOGGER = logging.getLogger(__name__)

M = TypeVar("M")

DEFAULT_PORT = "default"


class SessionManager(Generic[M]):
    """Named registry of :class:`SessionPort` objects.

    The ``default`` port is created eagerly from the manager options. Ports
    created later receive a copy of those options, so changing
    ``manager.options`` afterwards never affects an existing port.
    """

    def __init__(
        self,
        sender: Sender,
        *,
        settings: Optional[SessionSettings] = None,
        **overrides: Any,
    ) -> None:
        overrides.pop("name", None)
        self.options = PortOptions.from_settings(settings, sender=sender, name=DEFAULT_PORT, **overrides)
        self.ports: Dict[str, SessionPort[M]] = {}
        self.ports[DEFAULT_PORT] = SessionPort(self.options.derive())

    @property
    def default(self) -> SessionPort[M]:
        return self.ports[DEFAULT_PORT]

    def is_session(self, message: Any) -> bool:
        """True when ``message`` carries a positive id under the configured field."""

        return is_session_message(message, self.options.session_id_name)

    def get_port(self, name: str = DEFAULT_PORT) -> Optional[SessionPort[M]]:
        return self.ports.get(name)

    def get_session(self, message: Any, port: str = DEFAULT_PORT) -> Optional[Session[M]]:
        """Look ``message`` up on ``port`` using that port's id field."""

        port_obj = self.ports.get(port)
        if port_obj is None:
            return None
        return port_obj.get(message)

    def create_session(self, port: str = DEFAULT_PORT, **overrides: Any) -> Optional[Session[M]]:
        port_obj = self.ports.get(port)
        if port_obj is None:
            return None
        return port_obj.create(**overrides)

    def create_port(self, name: str, sender: Optional[Sender] = None, **overrides: Any) -> SessionPort[M]:
        """Register a new port; options not given are copied from the manager."""

        if name in self.ports:
            raise ValueError(f"Session port {name!r} already exists")
        options = self.options.derive(name=name, sender=sender, **overrides)
        port: SessionPort[M] = SessionPort(options)
        self.ports[name] = port
        return port

    def remove_port(self, name: str) -> None:
        if name == DEFAULT_PORT:
            raise ValueError("The default session port cannot be removed")
        port = self.ports.pop(name, None)
        if port is not None:
            port.destroy()

    def dispatch(self, message: Any, port: str = DEFAULT_PORT) -> bool:
        """Route an inbound reply to its session; returns False when it was dropped."""

        port_obj = self.ports.get(port)
        if port_obj is None:
            LOGGER.debug("Dropping reply for unknown session port %s", port)
            return False
        session = port_obj.get(message)
        if session is None:
            if port_obj.is_session(message):
                LOGGER.debug(
                    "Dropping reply for unknown session %s on port %s",
                    read_sid(message, port_obj.options.session_id_name),
                    port,
                )
            return False
        session.next(message)
        return True

    def destroy(self) -> None:
        for port in list(self.ports.values()):
            port.destroy()

    async def aclose(self) -> None:
        for port in list(self.ports.values()):
            await port.aclose()
