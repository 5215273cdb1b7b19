"""LLM answer parsing."""

import pytest

from conftest import FakeLLM
from marketbot.core.agent.ai import AIExtractor, normalize_entities, parse_json_block
from marketbot.core.agent.intents import Intent
from marketbot.core.agent.models import ConversationSession
from marketbot.core.errors import AIExtractionError


def test_fenced_block_is_preferred():
    content = 'Sure! {"ignored": true}\n```json\n{"intent": "buy"}\n```'

    assert parse_json_block(content) == {"intent": "buy"}


def test_bare_object():
    assert parse_json_block('Result: {"intent": "help", "entities": {}}') == {"intent": "help", "entities": {}}


@pytest.mark.parametrize("content", ["no json here", "{not: json}", "```json\n[1, 2]\n```"])
def test_unusable_answers(content):
    with pytest.raises(AIExtractionError):
        parse_json_block(content)


def test_normalize_entities():
    entities = normalize_entities({
        "minPrice": "10,000",
        "maxPrice": 20000,
        "currency": "xaf",
        "productId": "#4",
        "rating": 9,
        "location": " Buea ",
        "colour": "red",
        "query": None,
    })

    assert entities == {
        "min_price": 10000,
        "max_price": 20000,
        "currency": "FCFA",
        "product_id": "4",
        "location": "Buea",
    }


@pytest.mark.asyncio
async def test_extract_normalizes_answer():
    llm = FakeLLM('{"intent": "select_product", "entities": {"product_id": 2}}')
    session = ConversationSession(user_id="u1")
    session.add_turn("user", "TVs", limit=10)
    session.add_turn("assistant", "Here are the products", limit=10)
    session.add_turn("user", "the second one", limit=10)

    result = await AIExtractor(llm, timeout=1).extract("the second one", session)

    assert result.intent is Intent.SELECT_PRODUCT
    assert result.entities == {"product_id": "2"}
