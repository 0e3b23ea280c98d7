import asyncio
from dataclasses import FrozenInstanceError, dataclass

import pytest
from pydantic import BaseModel

from sessionport import (
    SessionAbortError,
    SessionCancelError,
    SessionError,
    SessionInvalidError,
    SessionTimeoutError,
)
from sessionport.tests.helpers import EchoPeer, Recorder


@pytest.mark.asyncio
async def test_send_resolves_with_reply(make_manager):
    peer = EchoPeer()
    manager = make_manager(peer)
    session = manager.create_session()

    request = {"type": "request", "value": 1}
    reply = await asyncio.wait_for(session.send(request), timeout=1.0)

    assert reply == {"sid": session.id, "type": "response", "value": 2}
    assert session.pending is False
    assert peer.sent[0]["sid"] == session.id
    assert "sid" not in request, "caller's message must not be mutated"


@pytest.mark.asyncio
async def test_many_rounds_on_one_session(make_manager):
    manager = make_manager(EchoPeer(delay=0.001))
    session = manager.default.create()

    values = []
    for i in range(10):
        reply = await asyncio.wait_for(session.send({"type": "request", "value": i}), timeout=1.0)
        values.append(reply["value"])

    assert values == [1, 2, 3, 4, 5, 6, 7, 8, 9, 10]
    assert session.pending is False


@pytest.mark.asyncio
async def test_sweep_times_out_unanswered_exchange(make_manager):
    manager = make_manager(Recorder(), session_timeout_ms=40)
    session = manager.create_session()

    with pytest.raises(SessionTimeoutError):
        await asyncio.wait_for(session.send({"type": "request", "value": 1}), timeout=1.0)

    assert session.pending is False
    assert session.destroyed is False
    assert manager.get_session({"sid": session.id}) is session


@pytest.mark.asyncio
async def test_call_timeout_fires_before_sweep(make_manager):
    manager = make_manager(Recorder(), session_timeout_ms=60_000)
    session = manager.create_session()
    loop = asyncio.get_running_loop()
    started = loop.time()

    with pytest.raises(SessionTimeoutError):
        await asyncio.wait_for(session.send({"value": 1}, timeout_ms=20), timeout=1.0)

    assert loop.time() - started < 0.5
    assert session.pending is False


@pytest.mark.asyncio
async def test_reply_disarms_exchange_timer(make_manager):
    manager = make_manager(EchoPeer(delay=0.001))
    session = manager.create_session()

    await asyncio.wait_for(session.send({"value": 1}, timeout_ms=30), timeout=1.0)
    assert session.exchange is not None
    assert session.exchange.timer is None

    await asyncio.sleep(0.05)
    reply = await asyncio.wait_for(session.send({"value": 5}), timeout=1.0)
    assert reply["value"] == 6


@pytest.mark.asyncio
async def test_cancel_rejects_pending_exchange(make_manager):
    sender = Recorder()
    manager = make_manager(sender)
    session = manager.create_session()

    task = asyncio.create_task(session.send({"type": "request", "value": 1}))
    await asyncio.sleep(0)
    session.cancel()

    with pytest.raises(SessionCancelError):
        await task
    assert session.pending is False
    assert len(sender.sent) == 1


@pytest.mark.asyncio
async def test_sender_failure_aborts_exchange(make_manager):
    boom = RuntimeError("send failed")

    def failing(message):
        raise boom

    manager = make_manager(failing)
    session = manager.create_session()

    with pytest.raises(SessionAbortError) as excinfo:
        await session.send({"type": "request", "value": 1})

    assert excinfo.value.cause is boom
    assert excinfo.value.__cause__ is boom
    assert str(excinfo.value) == "send failed"
    assert isinstance(excinfo.value, SessionError)
    assert session.pending is False


@pytest.mark.asyncio
async def test_retry_sends_retry_count_plus_one_times(make_manager):
    sender = Recorder()
    manager = make_manager(sender, session_timeout_ms=30, retry_count=5, retry_interval_ms=5)
    session = manager.default.create()

    with pytest.raises(SessionTimeoutError):
        await asyncio.wait_for(session.send({"type": "request", "value": 1}), timeout=3.0)

    assert len(sender.sent) == 6
    assert session.pending is False
    assert session.retrying is False


@pytest.mark.asyncio
async def test_retry_recovers_after_sender_failure(make_manager):
    peer = EchoPeer(delay=0.001)
    calls = {"count": 0}

    def flaky(message):
        calls["count"] += 1
        if calls["count"] == 1:
            raise ConnectionError("link down")
        peer(message)

    manager = make_manager(flaky)
    peer.manager = manager
    session = manager.create_session(retry_count=2, retry_interval_ms=1)

    reply = await asyncio.wait_for(session.send({"value": 1}), timeout=1.0)

    assert reply["value"] == 2
    assert calls["count"] == 2


@pytest.mark.asyncio
async def test_call_retry_override_wins_over_session_default(make_manager):
    sender = Recorder()
    manager = make_manager(sender, retry_count=4)
    session = manager.create_session()

    with pytest.raises(SessionTimeoutError):
        await asyncio.wait_for(
            session.send({"value": 1}, timeout_ms=10, retry_count=1, retry_interval_ms=1),
            timeout=1.0,
        )

    assert len(sender.sent) == 2


@pytest.mark.asyncio
async def test_cancel_during_retry_stops_further_attempts(make_manager):
    sender = Recorder()
    manager = make_manager(sender, retry_count=5, retry_interval_ms=1)
    session = manager.create_session()

    task = asyncio.create_task(session.send({"value": 1}))
    await asyncio.sleep(0)
    session.cancel()

    with pytest.raises(SessionCancelError):
        await asyncio.wait_for(task, timeout=1.0)
    await asyncio.sleep(0.02)
    assert len(sender.sent) == 1
    assert session.retrying is False


@pytest.mark.asyncio
async def test_cancel_during_backoff_raises_cancel(make_manager):
    calls = {"count": 0}

    def failing(message):
        calls["count"] += 1
        raise RuntimeError("unreachable")

    manager = make_manager(failing, retry_count=3, retry_interval_ms=100)
    session = manager.create_session()

    task = asyncio.create_task(session.send({"value": 1}))
    await asyncio.sleep(0.01)
    assert session.retrying is False
    session.cancel()

    with pytest.raises(SessionCancelError):
        await asyncio.wait_for(task, timeout=1.0)
    assert calls["count"] == 1


@pytest.mark.asyncio
async def test_abort_with_custom_error(make_manager):
    manager = make_manager(Recorder())
    session = manager.create_session()
    cause = ValueError("peer gone")

    task = asyncio.create_task(session.send({"value": 1}))
    await asyncio.sleep(0)
    session.abort(cause)

    with pytest.raises(SessionAbortError) as excinfo:
        await task
    assert excinfo.value.cause is cause


@pytest.mark.asyncio
async def test_abort_without_error_uses_generic_abort(make_manager):
    manager = make_manager(Recorder())
    session = manager.create_session()

    task = asyncio.create_task(session.send({"value": 1}))
    await asyncio.sleep(0)
    session.abort()

    with pytest.raises(SessionAbortError) as excinfo:
        await task
    assert excinfo.value.cause is None


@pytest.mark.asyncio
async def test_end_cancels_pending_and_releases_id(make_manager):
    manager = make_manager(Recorder())
    port = manager.default
    session = manager.create_session()

    task = asyncio.create_task(session.send({"value": 1}))
    await asyncio.sleep(0)
    session.end()

    assert session.destroyed is True
    assert str(session.id) in port.sessions, "removal is deferred to the next loop iteration"
    with pytest.raises(SessionCancelError):
        await task
    await asyncio.sleep(0)
    assert str(session.id) not in port.sessions


@pytest.mark.asyncio
async def test_send_after_end_is_invalid(make_manager):
    manager = make_manager(EchoPeer())
    session = manager.create_session()
    session.end()

    with pytest.raises(SessionInvalidError):
        await session.send({"value": 1})
    with pytest.raises(SessionInvalidError):
        session.post({"value": 1})


@pytest.mark.asyncio
async def test_post_stamps_id_without_exchange(make_manager):
    sender = Recorder()
    manager = make_manager(sender)
    session = manager.create_session()
    before = session.last_send_time

    session.post({"type": "notify"})

    assert sender.sent == [{"type": "notify", "sid": session.id}]
    assert session.pending is False
    assert session.exchange is None
    assert session.last_send_time >= before


@pytest.mark.asyncio
async def test_late_reply_after_timeout_is_ignored(make_manager):
    manager = make_manager(Recorder())
    session = manager.create_session()

    with pytest.raises(SessionTimeoutError):
        await session.send({"value": 1}, timeout_ms=5)

    session.next({"sid": session.id, "value": 2})
    assert session.pending is False


@pytest.mark.asyncio
async def test_second_send_supersedes_pending_exchange(make_manager):
    sender = Recorder()
    manager = make_manager(sender)
    session = manager.create_session()

    first = asyncio.create_task(session.send({"value": 1}))
    await asyncio.sleep(0)
    second = asyncio.create_task(session.send({"value": 2}))
    await asyncio.sleep(0)

    with pytest.raises(SessionCancelError):
        await first
    session.next({"sid": session.id, "value": 3})
    assert (await second)["value"] == 3


class _Request(BaseModel):
    sid: int = 0
    value: int


@pytest.mark.asyncio
async def test_pydantic_message_is_copied_with_id(make_manager):
    sender = Recorder()
    manager = make_manager(sender)
    session = manager.create_session()
    message = _Request(value=7)

    session.post(message)

    assert message.sid == 0
    assert isinstance(sender.sent[0], _Request)
    assert sender.sent[0].sid == session.id
    assert sender.sent[0].value == 7


@pytest.mark.asyncio
async def test_superseded_retry_loop_stops_resending(make_manager):
    sender = Recorder()
    manager = make_manager(sender)
    session = manager.create_session()

    first = asyncio.create_task(
        session.send({"value": 1}, timeout_ms=20, retry_count=3, retry_interval_ms=1)
    )
    await asyncio.sleep(0)
    second = asyncio.create_task(session.send({"value": 2}))
    await asyncio.sleep(0)

    with pytest.raises(SessionCancelError):
        await asyncio.wait_for(first, timeout=1.0)
    await asyncio.sleep(0.05)

    assert [message["value"] for message in sender.sent] == [1, 2]
    assert session.pending is True
    session.next({"sid": session.id, "value": 3})
    assert (await asyncio.wait_for(second, timeout=1.0))["value"] == 3
    assert session.retrying is False


@dataclass(frozen=True)
class _Frozen:
    value: int


@pytest.mark.asyncio
async def test_unstampable_message_leaves_session_idle(make_manager):
    sender = Recorder()
    manager = make_manager(sender, retry_count=2, retry_interval_ms=1)
    session = manager.create_session()

    with pytest.raises(FrozenInstanceError):
        await session.send(_Frozen(value=1))

    assert session.pending is False
    assert session.retrying is False
    assert session.exchange is None
    assert sender.sent == []


@pytest.mark.asyncio
async def test_zero_timeout_disables_exchange_timer(make_manager):
    manager = make_manager(Recorder())
    session = manager.create_session(timeout_ms=20)

    task = asyncio.create_task(session.send({"value": 1}, timeout_ms=0))
    await asyncio.sleep(0.05)

    assert not task.done()
    assert session.exchange.timer is None
    session.next({"sid": session.id, "value": 2})
    assert (await task)["value"] == 2
