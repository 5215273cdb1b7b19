"""
AI-backed entity extraction.
Asks the LLM for {intent, entities, reply} as JSON. Any failure raises
AIExtractionError so the caller can fall back to the rule-based extractor.
"""

import asyncio
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Optional

from marketbot.config import settings
from marketbot.core.agent.entities import MAX_RATING, MIN_RATING, normalize_currency
from marketbot.core.agent.intents import Intent
from marketbot.core.agent.models import ConversationSession
from marketbot.core.agent.prompts import EXAMPLE_PROMPT, SYSTEM_PROMPT
from marketbot.core.errors import AIExtractionError
from marketbot.integrations.llm import BaseLLM, ChatMessage

logger = logging.getLogger(__name__)

FENCED_JSON = re.compile(r"```(?:json)?\s*(\{[\s\S]*?\})\s*```")
BARE_JSON = re.compile(r"\{[\s\S]*\}")

# camelCase keys some models prefer
KEY_ALIASES = {
    "minPrice": "min_price",
    "maxPrice": "max_price",
    "exactPrice": "exact_price",
    "productId": "product_id",
}
PRICE_KEYS = ("min_price", "max_price", "exact_price")
TEXT_KEYS = ("query", "category", "location")

# Turns of history sent with each request
HISTORY_WINDOW = 6


@dataclass
class AIExtraction:
    """Parsed LLM answer."""
    intent: Intent
    entities: dict[str, Any] = field(default_factory=dict)
    reply: Optional[str] = None


def parse_json_block(content: str) -> dict:
    """First fenced ```json block, else the outermost {...} in the text."""
    match = FENCED_JSON.search(content) or BARE_JSON.search(content)
    if not match:
        raise AIExtractionError("LLM answer contains no JSON object")

    raw = match.group(1) if match.re is FENCED_JSON else match.group()
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise AIExtractionError(f"LLM answer is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise AIExtractionError("LLM answer is not a JSON object")
    return data


def _to_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        cleaned = re.sub(r"[^\d.]", "", value.replace(",", ""))
        try:
            return float(cleaned)
        except ValueError:
            return None
    return None


def normalize_entities(raw: Any) -> dict[str, Any]:
    """Keep known entity keys with sane types, drop everything else."""
    if not isinstance(raw, dict):
        return {}

    entities: dict[str, Any] = {}
    for key, value in raw.items():
        key = KEY_ALIASES.get(key, key)
        if value is None or value == "":
            continue

        if key in TEXT_KEYS and isinstance(value, str):
            entities[key] = value.strip()
        elif key in PRICE_KEYS:
            amount = _to_float(value)
            if amount is not None:
                entities[key] = amount
        elif key == "currency" and isinstance(value, str):
            entities[key] = normalize_currency(value.strip())
        elif key == "product_id":
            entities[key] = str(value).lstrip("#").strip()
        elif key == "rating":
            try:
                stars = int(value)
            except (TypeError, ValueError):
                continue
            if MIN_RATING <= stars <= MAX_RATING:
                entities[key] = stars

    if any(key in entities for key in PRICE_KEYS) and "currency" not in entities:
        entities["currency"] = settings.default_currency
    return entities


class AIExtractor:
    """LLM-backed extractor with a hard timeout."""

    def __init__(self, llm: BaseLLM, timeout: Optional[float] = None):
        self.llm = llm
        self.timeout = timeout or settings.ai_timeout_seconds

    def _build_messages(self, message: str, session: ConversationSession) -> list[ChatMessage]:
        context = {k: v for k, v in session.context.items() if k != "checkout_info"}
        system = SYSTEM_PROMPT.format(
            intents=", ".join(i.value for i in Intent if i is not Intent.UNKNOWN),
            state=session.state_value,
            context=json.dumps(context, ensure_ascii=False, default=str),
        )
        messages = [
            ChatMessage(role="system", content=system),
            ChatMessage(role="system", content=EXAMPLE_PROMPT),
        ]
        # The current message is already the last history turn
        for turn in session.history[-HISTORY_WINDOW:-1]:
            messages.append(ChatMessage(role=turn.role, content=turn.content))
        messages.append(ChatMessage(role="user", content=message))
        return messages

    async def extract(self, message: str, session: ConversationSession) -> AIExtraction:
        """
        Extract intent and entities with the LLM.

        Raises:
            AIExtractionError: on timeout, provider error or unusable output
        """
        try:
            response = await asyncio.wait_for(
                self.llm.chat(self._build_messages(message, session), temperature=0.1, max_tokens=500),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise AIExtractionError(f"{self.llm.name} timed out after {self.timeout}s") from e
        except Exception as e:
            raise AIExtractionError(f"{self.llm.name} request failed: {e}") from e

        data = parse_json_block(response.content.strip())
        intent = Intent.parse(data.get("intent"))
        if intent is Intent.UNKNOWN:
            raise AIExtractionError(f"LLM returned unusable intent {data.get('intent')!r}")

        reply = data.get("reply")
        result = AIExtraction(
            intent=intent,
            entities=normalize_entities(data.get("entities")),
            reply=reply.strip() if isinstance(reply, str) and reply.strip() else None,
        )
        logger.debug(f"AI extraction: intent={result.intent.value}, entities={result.entities}")
        return result
