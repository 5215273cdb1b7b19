"""
Base interface for LLM providers.
Allows switching between GigaChat and OpenRouter.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class LLMResponse:
    """Response from LLM."""

    content: str
    tokens_used: int | None = None
    model: str | None = None


@dataclass
class ChatMessage:
    """Single chat message sent to the LLM."""

    role: str  # system, user, assistant
    content: str


class BaseLLM(ABC):
    """Abstract base class for LLM providers."""

    @abstractmethod
    async def chat(
        self,
        messages: list[ChatMessage],
        temperature: float = 0.3,
        max_tokens: int = 1024,
    ) -> LLMResponse:
        """
        Generate a reply for a multi-turn conversation.

        Args:
            messages: Conversation, system message first
            temperature: Sampling temperature (0-1)
            max_tokens: Maximum tokens to generate

        Returns:
            LLMResponse with generated content
        """
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name."""
        pass
