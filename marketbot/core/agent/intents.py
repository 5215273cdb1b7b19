"""
Intent classification.
Ordered rule table: the first rule whose patterns ALL match wins.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class Intent(str, Enum):
    """Closed set of user intents."""
    SEARCH = "search"
    HELP = "help"
    SELECT_PRODUCT = "select_product"
    BUY = "buy"
    CONTACT_SELLER = "contact_seller"
    CANCEL = "cancel"
    REFINE_SEARCH = "refine_search"
    SUBMIT_RATING = "submit_rating"
    CONFIRM_PAYMENT = "confirm_payment"
    CHECKOUT = "checkout"
    TRACK_ORDER = "track_order"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Any) -> "Intent":
        """Map free-form intent names (e.g. from the LLM) to the enum."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return cls.UNKNOWN
        normalized = value.strip().lower().replace("-", "_").replace(" ", "_")
        try:
            return cls(normalized)
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class IntentRule:
    """Intent matched when every pattern matches the message."""
    intent: Intent
    patterns: tuple[re.Pattern, ...]

    def matches(self, message: str) -> bool:
        return all(pattern.search(message) for pattern in self.patterns)


def _rule(intent: Intent, *patterns: str) -> IntentRule:
    return IntentRule(intent, tuple(re.compile(p, re.IGNORECASE) for p in patterns))


# Order matters: more specific conjunctive rules come before the broad
# single-keyword ones ("Payment sent" must not be read as "buy").
INTENT_RULES: tuple[IntentRule, ...] = (
    _rule(
        Intent.CONFIRM_PAYMENT,
        r"\b(?:confirm(?:ed)?|verified|completed|done|finished|paid|sent)\b",
        r"\b(?:payment|paid|transaction|money|transfer)\b",
    ),
    _rule(
        Intent.TRACK_ORDER,
        r"\b(?:track|tracking|where is|status)\b",
        r"\b(?:orders?|package|delivery|purchase|parcel)\b",
    ),
    _rule(Intent.TRACK_ORDER, r"\bmy (?:orders?|purchases)\b"),
    _rule(Intent.CHECKOUT, r"\b(?:checkout|check out|proceed to pay(?:ment)?)\b"),
    _rule(
        Intent.SEARCH,
        r"\b(?:find|search(?:ing)?|looking for|show|get|need|want|browse|discover|any)\b",
        r"\b(?:products?|items?|listings?|goods|services|sellers?|deals?)\b",
    ),
    _rule(Intent.SEARCH, r"\b(?:shop more|new search|search again|browse categories)\b"),
    _rule(Intent.HELP, r"\b(?:help|support|guide|how to|how do i|assist(?:ance)?)\b"),
    _rule(
        Intent.SELECT_PRODUCT,
        r"\b(?:select|choose|pick|view|details|more info|tell me about)\b",
        r"\b(?:products?|items?|listings?|this|that|it|one|number)\b",
    ),
    _rule(Intent.BUY, r"\b(?:buy|purchase|order|acquire|pay|take it)\b"),
    _rule(
        Intent.CONTACT_SELLER,
        r"\b(?:contact|message|chat|talk|speak|call|connect|reach)\b",
        r"\b(?:seller|vendor|owner|merchant|provider)\b",
    ),
    _rule(Intent.CANCEL, r"\b(?:cancel|stop|quit|exit|back|return|nevermind|never mind|forget it)\b"),
    _rule(
        Intent.REFINE_SEARCH,
        r"\b(?:refine|filter|sort|narrow|cheaper|more expensive|better|newer|different|other)\b",
    ),
    _rule(Intent.SUBMIT_RATING, r"\b(?:rate|rating|review|feedback|stars?|score)\b"),
)

SEARCH_ENTITY_KEYS = ("query", "category", "location", "min_price", "max_price", "exact_price")


def has_search_entities(entities: dict[str, Any]) -> bool:
    """Check if any search-relevant entity was extracted."""
    return any(entities.get(key) not in (None, "") for key in SEARCH_ENTITY_KEYS)


def match_rule(message: str) -> Optional[Intent]:
    """Return intent of the first fully matching rule."""
    for rule in INTENT_RULES:
        if rule.matches(message):
            return rule.intent
    return None


def classify_intent(message: str, entities: dict[str, Any]) -> Intent:
    """
    Determine the intent of a message.

    Product references and ratings short-circuit the rule table; when
    nothing matches, the presence of search entities decides between
    search and help.
    """
    if entities.get("product_id"):
        return Intent.SELECT_PRODUCT

    if entities.get("rating"):
        return Intent.SUBMIT_RATING

    matched = match_rule(message)
    if matched is not None:
        return matched

    if has_search_entities(entities):
        return Intent.SEARCH

    return Intent.HELP
