"""
LLM providers used by the AI-backed extractor.
"""

import logging
from functools import lru_cache
from typing import Callable

from marketbot.config import settings
from marketbot.integrations.llm.base import BaseLLM, ChatMessage, LLMResponse
from marketbot.integrations.llm.gigachat import GigaChatLLM
from marketbot.integrations.llm.openrouter import OpenRouterLLM

logger = logging.getLogger(__name__)

PROVIDERS: dict[str, Callable[[], BaseLLM]] = {
    "gigachat": GigaChatLLM,
    "openrouter": OpenRouterLLM,
}


def get_llm_provider(provider: str | None = None) -> BaseLLM:
    """
    Build an LLM provider.

    Args:
        provider: 'gigachat' or 'openrouter'; settings.llm_provider when None

    Raises:
        ValueError: unknown provider or missing credentials
    """
    provider = provider or settings.llm_provider
    factory = PROVIDERS.get(provider)
    if factory is None:
        raise ValueError(f"Unknown LLM provider: {provider}")
    return factory()


@lru_cache(maxsize=1)
def get_default_llm() -> BaseLLM | None:
    """Cached configured provider, None when it cannot be built."""
    try:
        return get_llm_provider()
    except ValueError as e:
        logger.warning(f"AI extraction unavailable: {e}")
        return None


__all__ = [
    "BaseLLM",
    "ChatMessage",
    "LLMResponse",
    "GigaChatLLM",
    "OpenRouterLLM",
    "get_llm_provider",
    "get_default_llm",
]
