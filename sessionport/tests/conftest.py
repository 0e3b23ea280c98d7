from typing import Any, Callable

import pytest_asyncio

from sessionport import SessionManager
from sessionport.tests.helpers import EchoPeer


@pytest_asyncio.fixture
async def make_manager():
    created: list[SessionManager] = []

    def _make(sender: Callable[[Any], None], **options: Any) -> SessionManager:
        options.setdefault("max_session_count", 100)
        options.setdefault("session_timeout_ms", 1000)
        options.setdefault("session_max_life_ms", 2000)
        manager = SessionManager(sender, **options)
        if isinstance(sender, EchoPeer):
            sender.manager = manager
        created.append(manager)
        return manager

    yield _make
    for manager in created:
        await manager.aclose()
