from __future__ import annotations

import asyncio

import pytest

from quote_duet.sessions import Session, SessionRegistry

from tests.helpers import Outbox, ScriptedGateway, make_driver, wait_until


def _factory(session: Session):
    return make_driver(session, ScriptedGateway(), ScriptedGateway())


@pytest.mark.asyncio
async def test_sessions_get_distinct_state() -> None:
    registry = SessionRegistry(_factory)

    first = await registry.create(Outbox())
    second = await registry.create(Outbox())

    assert len(registry) == 2
    assert first.session_id != second.session_id
    assert first.state is not second.state
    assert first.ack is not second.ack
    assert first.driver.session is first
    assert await registry.get(first.session_id) is first


@pytest.mark.asyncio
async def test_remove_stops_a_running_conversation() -> None:
    registry = SessionRegistry(_factory)
    session = await registry.create(Outbox())
    other = await registry.create(Outbox())

    await session.driver.start()
    await other.driver.start()
    await wait_until(lambda: session.ack.pending)

    await registry.remove(session.session_id)

    assert await registry.get(session.session_id) is None
    assert not session.state.is_running
    assert not session.ack.pending
    assert session.driver.task is None
    # the neighbour is untouched
    assert other.state.is_running
    await registry.close_all()
    assert len(registry) == 0
    assert not other.state.is_running


@pytest.mark.asyncio
async def test_remove_unknown_session_is_noop() -> None:
    registry = SessionRegistry(_factory)
    await registry.remove("nope")
    assert len(registry) == 0
    await asyncio.sleep(0)
