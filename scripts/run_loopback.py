"""Runs two in-process peers exchanging request/response messages through sessions."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any

LOGGER = logging.getLogger("sessionport.loopback")


async def run(rounds: int, delay_ms: int) -> None:
    from sessionport import SessionManager, SessionTimeoutError  # type: ignore

    loop = asyncio.get_running_loop()
    client: SessionManager
    server: SessionManager

    def deliver(target: str, message: dict[str, Any]) -> None:
        peer = client if target == "client" else server
        loop.call_later(delay_ms / 1000.0, on_message, peer, target, message)

    def on_message(peer: SessionManager, name: str, message: dict[str, Any]) -> None:
        if not peer.is_session(message):
            LOGGER.info("%s ignored non-session message %s", name, message)
            return
        if peer.dispatch(message) or name != "server":
            return
        # no local session: this is a request, answer it
        deliver("client", {**message, "type": "response", "value": message["value"] + 1})

    client = SessionManager(lambda message: deliver("server", message))
    server = SessionManager(lambda message: deliver("client", message))
    try:
        session = client.create_session()
        assert session is not None
        value = 0
        for _ in range(rounds):
            try:
                reply = await session.send({"type": "request", "value": value}, timeout_ms=1000)
            except SessionTimeoutError:
                LOGGER.warning("Round timed out at value=%s", value)
                break
            LOGGER.info("session=%s sent=%s received=%s", session.id, value, reply["value"])
            value = reply["value"]
        session.end()
    finally:
        await client.aclose()
        await server.aclose()


def main() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    sys.path.insert(0, str(repo_root))

    # Lazy import after adjusting sys.path
    from sessionport.config import get_settings  # type: ignore
    from sessionport.logconfig import configure_logging  # type: ignore

    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--rounds", type=int, default=5)
    parser.add_argument("--delay-ms", type=int, default=10)
    args = parser.parse_args()

    configure_logging(get_settings())
    asyncio.run(run(args.rounds, args.delay_ms))


if __name__ == "__main__":
    main()
