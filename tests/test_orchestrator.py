"""Conversation orchestrator."""

import asyncio

import pytest

from conftest import FakeLLM, FakeStore, conversation_manager, make_listing
from marketbot.core.agent.ai import AIExtractor
from marketbot.core.agent.models import utcnow
from marketbot.core.agent.orchestrator import FAILURE_TEXT, Orchestrator
from marketbot.core.agent.responses import MENU_MESSAGE, ResponseGenerator
from marketbot.core.agent.states import AgentState
from marketbot.core.commands import CommandRouter
from marketbot.core.errors import StoreError
from marketbot.core.sessions import InMemorySessionStore


class BrokenSessionStore(InMemorySessionStore):
    async def set(self, key, payload, last_interaction):
        raise StoreError("disk full")


def build(store, ai_extractor=None, sessions=None, **kwargs):
    return Orchestrator(
        sessions=sessions or conversation_manager(),
        generator=ResponseGenerator(store),
        ai_extractor=ai_extractor,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_search_from_initial(orchestrator):
    response = await orchestrator.process("u1", "TVs under 50000 FCFA in Douala")

    assert response.intent == "search"
    assert response.state == "searching"
    assert response.entities == {
        "max_price": 50000,
        "currency": "FCFA",
        "location": "Douala",
        "query": "TVs",
    }
    session = await orchestrator.get_session("u1")
    assert session.context["last_result_ids"] == ["11", "12", "13"]
    assert [turn.role for turn in session.history] == ["user", "assistant"]


@pytest.mark.asyncio
async def test_purchase_flow(orchestrator, store):
    await orchestrator.process("u1", "TVs in Douala")

    viewed = await orchestrator.process("u1", "2")
    assert viewed.state == "viewing_product"
    assert "LG Television 43 inch" in viewed.text

    checkout = await orchestrator.process("u1", "buy")
    assert checkout.state == "checkout"
    assert "MP-12" in checkout.text
    [transaction] = store.transactions
    assert transaction.reference == "MP-12_u1"
    assert transaction.buyer_id == "u1"
    assert transaction.provider_reference == "T1"

    confirmed = await orchestrator.process("u1", "Payment sent")
    assert confirmed.intent == "confirm_payment"
    assert len(store.transactions) == 1


@pytest.mark.asyncio
async def test_listing_id_reference_outside_result_positions(orchestrator):
    await orchestrator.process("u1", "TVs in Douala")

    viewed = await orchestrator.process("u1", "product 13")

    assert viewed.state == "viewing_product"
    assert "Sony Bravia" in viewed.text


@pytest.mark.asyncio
async def test_cancel_from_search_clears_context(orchestrator):
    await orchestrator.process("u1", "TVs in Douala")

    response = await orchestrator.process("u1", "cancel")

    assert response.state == "initial"
    session = await orchestrator.get_session("u1")
    assert session.context == {}


@pytest.mark.asyncio
async def test_sessions_are_isolated(orchestrator):
    await asyncio.gather(
        orchestrator.process("u1", "TVs in Douala"),
        orchestrator.process("u2", "shoes in Yaounde"),
        orchestrator.process("u1", "2"),
        orchestrator.process("u2", "cancel"),
    )

    first = await orchestrator.get_session("u1")
    second = await orchestrator.get_session("u2")
    assert first.context["location"] == "Douala"
    assert first.context["active_product_id"] == "12"
    assert second.context == {}
    assert second.state is AgentState.INITIAL


@pytest.mark.asyncio
async def test_command_does_not_touch_session(orchestrator):
    response = await orchestrator.process("u1", "!subscription plans")

    assert "Available Subscription Plans" in response.text
    session = await orchestrator.get_session("u1")
    assert session.history == []


@pytest.mark.asyncio
async def test_unknown_command_is_a_normal_turn(orchestrator):
    response = await orchestrator.process("u1", "!hi")

    assert response.state == "initial"


@pytest.mark.asyncio
async def test_rating_after_purchase(orchestrator, store):
    prompt = await orchestrator.request_rating("u1", "11")
    assert prompt.state == "rating"

    reprompt = await orchestrator.process("u1", "it was fine")
    assert reprompt.state == "rating"

    thanks = await orchestrator.process("u1", "⭐⭐⭐⭐")
    assert thanks.state == "initial"
    assert store.ratings == [("11", "u1", 4)]


@pytest.mark.asyncio
async def test_unknown_stored_state_resets(store):
    backend = InMemorySessionStore()
    await backend.set(
        "u1",
        {"user_id": "u1", "state": "negotiating", "context": {"query": "tv"},
         "last_interaction": utcnow().isoformat()},
        utcnow(),
    )
    orchestrator = build(store, sessions=conversation_manager(backend))

    response = await orchestrator.process("u1", "TVs please")

    assert response.state == "initial"
    assert response.text == MENU_MESSAGE
    session = await orchestrator.get_session("u1")
    assert session.context == {}


@pytest.mark.asyncio
async def test_failed_turn_is_not_persisted(store):
    orchestrator = build(store, sessions=conversation_manager(BrokenSessionStore()))

    response = await orchestrator.process("u1", "TVs in Douala")

    assert response.text == FAILURE_TEXT
    session = await orchestrator.get_session("u1")
    assert session.history == []


@pytest.mark.asyncio
async def test_history_is_bounded(store):
    orchestrator = build(store, history_limit=4)

    for message in ("hello", "TVs in Douala", "2"):
        await orchestrator.process("u1", message)

    session = await orchestrator.get_session("u1")
    assert len(session.history) == 4
    assert session.history[0].content == "TVs in Douala"


@pytest.mark.asyncio
async def test_ai_extraction_is_used(store):
    llm = FakeLLM(
        '```json\n{"intent": "search", "entities": {"maxPrice": "50,000", "location": "Douala", '
        '"query": "TVs"}, "reply": null}\n```'
    )
    orchestrator = build(store, ai_extractor=AIExtractor(llm, timeout=1))

    response = await orchestrator.process("u1", "got any cheap tellies in Douala?")

    assert llm.calls == 1
    assert response.state == "searching"
    assert response.entities == {
        "max_price": 50000,
        "location": "Douala",
        "query": "TVs",
        "currency": "FCFA",
    }


@pytest.mark.asyncio
async def test_ai_reply_replaces_help_text(store):
    llm = FakeLLM('{"intent": "help", "entities": {}, "reply": "Ask me about any product!"}')
    orchestrator = build(store, ai_extractor=AIExtractor(llm, timeout=1))

    response = await orchestrator.process("u1", "what can you do")

    assert response.text == "Ask me about any product!"


@pytest.mark.asyncio
@pytest.mark.parametrize("llm", [
    FakeLLM(error=RuntimeError("provider down")),
    FakeLLM("I think you want a TV"),
    FakeLLM('{"intent": "dance"}'),
    FakeLLM('{"intent": "search"}', delay=0.5),
])
async def test_ai_failure_falls_back_to_rules(store, llm):
    orchestrator = build(store, ai_extractor=AIExtractor(llm, timeout=0.05))

    response = await orchestrator.process("u1", "TVs under 50000 FCFA in Douala")

    assert response.state == "searching"
    assert response.entities["max_price"] == 50000
    assert response.entities["location"] == "Douala"


@pytest.mark.asyncio
async def test_reset_forgets_conversation(orchestrator):
    await orchestrator.process("u1", "TVs in Douala")

    await orchestrator.reset("u1")

    session = await orchestrator.get_session("u1")
    assert session.state is AgentState.INITIAL
    assert session.context == {}


class CrashingPlansStore(FakeStore):
    async def list_subscription_plans(self):
        raise RuntimeError("driver bug")


@pytest.mark.asyncio
@pytest.mark.parametrize("answer,stars", [("5", 5), ("4", 4), ("1", 1)])
async def test_bare_number_answers_rating_prompt(orchestrator, store, answer, stars):
    await orchestrator.request_rating("u1", "11")

    thanks = await orchestrator.process("u1", answer)

    assert thanks.intent == "submit_rating"
    assert thanks.state == "initial"
    assert store.ratings == [("11", "u1", stars)]
    session = await orchestrator.get_session("u1")
    assert session.context["active_product_id"] == "11"


@pytest.mark.asyncio
async def test_out_of_range_number_reprompts_rating(orchestrator, store):
    await orchestrator.request_rating("u1", "11")

    reprompt = await orchestrator.process("u1", "7")

    assert reprompt.state == "rating"
    assert store.ratings == []


@pytest.mark.asyncio
async def test_command_crash_gets_an_apology():
    store = CrashingPlansStore([make_listing("11")])
    orchestrator = build(store, commands=CommandRouter(store))

    response = await orchestrator.process("u1", "!subscription plans")

    assert response.text == FAILURE_TEXT
    assert response.actions
