"""Session store, per-key locks and idle sweep."""

import asyncio
from datetime import timedelta

import pytest

from conftest import conversation_manager
from marketbot.core.agent.models import ConversationSession, utcnow
from marketbot.core.sessions import InMemorySessionStore, KeyedLock


@pytest.mark.asyncio
async def test_keyed_lock_serializes_one_key():
    locks = KeyedLock()
    events = []

    async def work(name):
        async with locks.hold("u1"):
            events.append(f"{name}-start")
            await asyncio.sleep(0.01)
            events.append(f"{name}-end")

    await asyncio.gather(work("a"), work("b"))

    assert events == ["a-start", "a-end", "b-start", "b-end"]
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_keyed_lock_lets_keys_run_concurrently():
    locks = KeyedLock()
    inside = set()
    overlap = []

    async def work(key):
        async with locks.hold(key):
            inside.add(key)
            await asyncio.sleep(0.01)
            overlap.append(len(inside))
            inside.discard(key)

    await asyncio.gather(work("u1"), work("u2"))

    assert max(overlap) == 2


@pytest.mark.asyncio
async def test_missing_session_is_fresh():
    session = await conversation_manager().load("nobody")

    assert session.user_id == "nobody"
    assert session.context == {}


@pytest.mark.asyncio
async def test_round_trip():
    manager = conversation_manager()
    session = ConversationSession(user_id="u1", context={"query": "tv"})
    session.add_turn("user", "tv", limit=5)

    await manager.save(session)
    loaded = await manager.load("u1")

    assert loaded.context == {"query": "tv"}
    assert loaded.history[0].content == "tv"


@pytest.mark.asyncio
async def test_unreadable_session_is_discarded():
    backend = InMemorySessionStore()
    await backend.set("u1", {"state": "initial"}, utcnow())

    session = await conversation_manager(backend).load("u1")

    assert session.user_id == "u1"


@pytest.mark.asyncio
async def test_expired_session_loads_fresh():
    manager = conversation_manager(idle_timeout=timedelta(minutes=30))
    old = ConversationSession(user_id="u1", context={"query": "tv"})
    old.last_interaction = utcnow() - timedelta(hours=1)
    await manager.save(old)

    session = await manager.load("u1")

    assert session.context == {}


@pytest.mark.asyncio
async def test_sweep_removes_only_idle_sessions():
    backend = InMemorySessionStore()
    manager = conversation_manager(backend, idle_timeout=timedelta(minutes=30))
    idle = ConversationSession(user_id="idle")
    idle.last_interaction = utcnow() - timedelta(hours=2)
    await manager.save(idle)
    await manager.save(ConversationSession(user_id="active"))

    removed = await manager.sweep_expired()

    assert removed == 1
    assert await backend.get("idle") is None
    assert await backend.get("active") is not None
