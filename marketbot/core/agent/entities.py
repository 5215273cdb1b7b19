"""
Rule-based entity extraction.
Turns a raw chat message into search filters, a product reference,
a rating and an intent. Pure function, no I/O.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Optional

from marketbot.core.agent.intents import Intent, classify_intent


@dataclass
class ExtractionResult:
    """Entities and intent found in one message."""
    entities: dict[str, Any] = field(default_factory=dict)
    intent: Optional[Intent] = None


# Currency aliases -> canonical code
CURRENCY_ALIASES = {
    "fcfa": "FCFA",
    "xaf": "FCFA",
    "cfa": "FCFA",
    "f": "FCFA",
    "eur": "EUR",
    "€": "EUR",
    "usd": "USD",
    "$": "USD",
}

_CURRENCY = r"(?:FCFA|XAF|CFA|EUR|USD|F|€|\$)(?![A-Za-z])"

# 50000 / 50,000 / 50 000 / 1.500 with optional ,50 or .50 decimals
_AMOUNT = r"(?<![\w.,])(\d{1,3}(?:[,. ]\d{3})+|\d+)(?:[.,](\d{1,2}))?(?!\d)"

PRICE_PATTERN = re.compile(_AMOUNT + r"\s*(" + _CURRENCY + r")", re.IGNORECASE)

MAX_QUALIFIER = r"(?:under|less than|cheaper than|below|not more than|max(?:imum)?|up to)"
MIN_QUALIFIER = r"(?:over|more than|above|at least|min(?:imum)?)"

MAX_QUALIFIER_PATTERN = re.compile(rf"\b{MAX_QUALIFIER}\b", re.IGNORECASE)
MIN_QUALIFIER_PATTERN = re.compile(rf"\b{MIN_QUALIFIER}\b", re.IGNORECASE)

PRICE_PHRASE_PATTERN = re.compile(
    rf"(?:\b(?:{MAX_QUALIFIER}|{MIN_QUALIFIER})\s+)?" + PRICE_PATTERN.pattern,
    re.IGNORECASE,
)

_WORDS = r"[A-Za-zÀ-ÿ][A-Za-zÀ-ÿ'\- ]*?"

LOCATION_PATTERN = re.compile(
    r"\b(?:in|at|near|around)\s+(?!least\b|most\b)"
    rf"({_WORDS})"
    r"(?=\s*(?:$|[,.?!;]|\b(?:and|or|in|at|near|around|under|over|below|above|less|more|"
    r"cheaper|not|up|max|maximum|min|minimum|for|with|between)\b|\d))",
    re.IGNORECASE,
)

CATEGORY_PATTERN = re.compile(
    r"\b(?:looking for|searching for|need|want|find)\s+(?!to\b)"
    r"(?:me\s+)?(?:(?:an?|some|the)\s+)?"
    rf"({_WORDS})"
    r"(?=\s*(?:$|[,.?!;]|\b(?:in|at|near|around|under|over|below|above|for|with|between|less|more|cheaper)\b|\d))",
    re.IGNORECASE,
)

FILLER_PATTERN = re.compile(
    r"\b(?:can you|could you|please|i want to|i need to|i'?m looking for|i am looking for|"
    r"show me|find me|get me|i want|i need|looking for|"
    r"hi|hello|hey|good (?:morning|afternoon|evening)|thanks|thank you|"
    r"refine search|new search|search again|search products|try again|back to search|"
    r"shop more|browse categories)\b\s*",
    re.IGNORECASE,
)

# Digits that continue as a price (5,000 / 5 000 / 5000 FCFA) are not ids
_NOT_PRICE = r"(?![.,]?\d)(?!\s\d{3}\b)(?!\s*" + _CURRENCY + r")"

PRODUCT_ID_PATTERN = re.compile(
    r"\b(?:product|item|listing)\s*#?\s*(\d+)" + _NOT_PRICE + r"|#(\d+)" + _NOT_PRICE,
    re.IGNORECASE,
)
BARE_NUMBER_PATTERN = re.compile(r"^\s*#?(\d{1,3})\s*[.)]?\s*$")

# Connector words stranded at either end once prices and places are removed
_CONNECTOR = r"(?:between|and|or|from|to|for|with|around|about)"
DANGLING_CONNECTOR_PATTERN = re.compile(
    rf"^(?:{_CONNECTOR}\s+)+|(?:\s+{_CONNECTOR})+$|^{_CONNECTOR}$", re.IGNORECASE
)

RATING_PATTERN = re.compile(
    r"(\d+)\s*stars?\b|\brate\s*(?:it\s*)?(\d+)|\brating\s*:?\s*(\d+)|(\d+)\s*(?:/|out of)\s*5\b",
    re.IGNORECASE,
)
STAR_GLYPH = "⭐"

MIN_RATING = 1
MAX_RATING = 5


def _parse_amount(whole: str, decimals: Optional[str]) -> float:
    """Parse '50 000' / '1.500' / '12' (+ '50') into a float."""
    value = float(re.sub(r"[,. ]", "", whole))
    if decimals:
        value += float(f"0.{decimals}")
    return value


def normalize_currency(token: str) -> str:
    """Map a currency alias to its canonical code."""
    return CURRENCY_ALIASES.get(token.lower(), token.upper())


def extract_prices(message: str) -> dict[str, Any]:
    """
    Extract price entities.

    Two or more prices form a range; a single price becomes a max, min or
    exact price depending on qualifier words. Max qualifiers are checked
    first, so "under ... over" reads as a maximum.
    """
    matches = [
        (_parse_amount(m.group(1), m.group(2)), normalize_currency(m.group(3)))
        for m in PRICE_PATTERN.finditer(message)
    ]
    if not matches:
        return {}

    if len(matches) >= 2:
        ordered = sorted(matches, key=lambda item: item[0])
        return {
            "min_price": ordered[0][0],
            "max_price": ordered[-1][0],
            "currency": ordered[0][1],
        }

    amount, currency = matches[0]
    if MAX_QUALIFIER_PATTERN.search(message):
        return {"max_price": amount, "currency": currency}
    if MIN_QUALIFIER_PATTERN.search(message):
        return {"min_price": amount, "currency": currency}
    return {"exact_price": amount, "currency": currency}


def extract_location(message: str) -> Optional[str]:
    """First 'in/at/near/around <place>' phrase."""
    match = LOCATION_PATTERN.search(message)
    if match:
        location = match.group(1).strip()
        return location or None
    return None


def extract_category(message: str) -> Optional[str]:
    """First 'looking for/need/want/find <thing>' phrase."""
    match = CATEGORY_PATTERN.search(message)
    if match:
        category = match.group(1).strip()
        return category or None
    return None


def derive_query(message: str, location: Optional[str]) -> Optional[str]:
    """Free-text query left after removing prices, location and filler."""
    query = PRICE_PHRASE_PATTERN.sub(" ", message)
    query = PRODUCT_ID_PATTERN.sub(" ", query)
    query = RATING_PATTERN.sub(" ", query)
    if location:
        query = re.sub(
            rf"\b(?:in|at|near|around)\s+{re.escape(location)}", " ", query, flags=re.IGNORECASE
        )
    query = FILLER_PATTERN.sub(" ", query)
    query = re.sub(r"[^\w\s'\-]", " ", query)
    query = re.sub(r"\s+", " ", query).strip(" -'")
    query = DANGLING_CONNECTOR_PATTERN.sub("", query).strip(" -'")

    if len(query) > 2:
        return query
    return None


def extract_product_id(message: str) -> Optional[str]:
    """Product reference kept as a string ('product 7', '#12', or just '3')."""
    match = PRODUCT_ID_PATTERN.search(message)
    if match:
        return match.group(1) or match.group(2)

    bare = BARE_NUMBER_PATTERN.match(message)
    if bare:
        return bare.group(1)
    return None


def extract_rating(message: str) -> Optional[int]:
    """Rating 1-5 from '4 stars', 'rate 5', 'rating: 3', '2 out of 5' or star glyphs."""
    match = RATING_PATTERN.search(message)
    if match:
        value = int(next(group for group in match.groups() if group))
        if MIN_RATING <= value <= MAX_RATING:
            return value
        return None

    stars = message.count(STAR_GLYPH)
    if MIN_RATING <= stars <= MAX_RATING:
        return stars
    return None


def extract(message: str) -> ExtractionResult:
    """
    Extract entities and intent from a message.

    Args:
        message: Raw user text

    Returns:
        ExtractionResult with entities and intent
    """
    message = message or ""
    entities: dict[str, Any] = {}

    entities.update(extract_prices(message))

    location = extract_location(message)
    if location:
        entities["location"] = location

    category = extract_category(message)
    if category:
        entities["category"] = category
        entities["query"] = category
    else:
        query = derive_query(message, location)
        if query:
            entities["query"] = query

    product_id = extract_product_id(message)
    if product_id:
        entities["product_id"] = product_id

    rating = extract_rating(message)
    if rating is not None:
        entities["rating"] = rating

    return ExtractionResult(entities=entities, intent=classify_intent(message, entities))
