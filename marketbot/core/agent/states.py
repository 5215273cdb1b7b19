"""
Conversation states and the transition table.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

from marketbot.core.agent.intents import Intent

logger = logging.getLogger(__name__)


class AgentState(str, Enum):
    """States of the marketplace conversation."""
    INITIAL = "initial"
    SEARCHING = "searching"
    VIEWING_PRODUCT = "viewing_product"
    CHECKOUT = "checkout"
    RATING = "rating"
    HELP = "help"


class ResponseType(str, Enum):
    """Responses the generator knows how to render."""
    SEARCH_RESULTS = "search_results"
    PRODUCT_VIEW = "product_view"
    CHECKOUT = "checkout"
    CONTACT_SELLER = "contact_seller"
    PAYMENT_CONFIRMATION = "payment_confirmation"
    RATING_SUBMISSION = "rating_submission"
    RATING_PROMPT = "rating_prompt"
    HELP = "help"
    WELCOME = "welcome"
    CANCELLED = "cancelled"
    MENU = "menu"


@dataclass(frozen=True)
class Transition:
    """Next state plus the response to render."""
    next_state: AgentState
    response: ResponseType
    clear_context: bool = False
    selects_product: bool = False


# (state, intent) -> transition; "*" is the fallback for any other intent
TRANSITIONS: dict[AgentState, dict[Union[Intent, str], Transition]] = {
    AgentState.INITIAL: {
        Intent.SEARCH: Transition(AgentState.SEARCHING, ResponseType.SEARCH_RESULTS),
        Intent.HELP: Transition(AgentState.INITIAL, ResponseType.HELP),
        "*": Transition(AgentState.INITIAL, ResponseType.WELCOME),
    },
    AgentState.SEARCHING: {
        Intent.SELECT_PRODUCT: Transition(
            AgentState.VIEWING_PRODUCT, ResponseType.PRODUCT_VIEW, selects_product=True
        ),
        Intent.CANCEL: Transition(AgentState.INITIAL, ResponseType.CANCELLED, clear_context=True),
        "*": Transition(AgentState.SEARCHING, ResponseType.SEARCH_RESULTS),
    },
    AgentState.VIEWING_PRODUCT: {
        Intent.BUY: Transition(AgentState.CHECKOUT, ResponseType.CHECKOUT),
        Intent.CHECKOUT: Transition(AgentState.CHECKOUT, ResponseType.CHECKOUT),
        Intent.CONTACT_SELLER: Transition(AgentState.VIEWING_PRODUCT, ResponseType.CONTACT_SELLER),
        Intent.SELECT_PRODUCT: Transition(
            AgentState.VIEWING_PRODUCT, ResponseType.PRODUCT_VIEW, selects_product=True
        ),
        "*": Transition(AgentState.VIEWING_PRODUCT, ResponseType.PRODUCT_VIEW),
    },
    AgentState.CHECKOUT: {
        Intent.CONFIRM_PAYMENT: Transition(AgentState.CHECKOUT, ResponseType.PAYMENT_CONFIRMATION),
        Intent.CANCEL: Transition(AgentState.VIEWING_PRODUCT, ResponseType.PRODUCT_VIEW),
        "*": Transition(AgentState.CHECKOUT, ResponseType.CHECKOUT),
    },
    AgentState.RATING: {
        Intent.SUBMIT_RATING: Transition(AgentState.INITIAL, ResponseType.RATING_SUBMISSION),
        "*": Transition(AgentState.RATING, ResponseType.RATING_PROMPT),
    },
}

# HELP has no rows of its own and behaves like INITIAL
TRANSITIONS[AgentState.HELP] = TRANSITIONS[AgentState.INITIAL]

RESET = Transition(AgentState.INITIAL, ResponseType.MENU, clear_context=True)

# Intents that only apply when the entity they act on is present
REQUIRED_ENTITY = {
    Intent.SELECT_PRODUCT: "product_id",
    Intent.SUBMIT_RATING: "rating",
}


def coerce_state(value: Any) -> Union[AgentState, str]:
    """Enum for known state values, raw value otherwise."""
    if isinstance(value, AgentState):
        return value
    try:
        return AgentState(value)
    except ValueError:
        return value


def resolve(state: Any, intent: Intent, entities: dict[str, Any]) -> Transition:
    """
    Resolve the next state for a turn.

    Args:
        state: Current session state (unknown values reset the session)
        intent: Classified intent
        entities: Entities extracted this turn

    Returns:
        Transition to apply
    """
    rows = TRANSITIONS.get(coerce_state(state))
    if rows is None:
        logger.warning(f"Unknown conversation state {state!r}, resetting")
        return RESET

    required = REQUIRED_ENTITY.get(intent)
    if required and not entities.get(required):
        return rows["*"]

    return rows.get(intent, rows["*"])
