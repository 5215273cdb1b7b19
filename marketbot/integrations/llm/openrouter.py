"""
OpenRouter LLM provider implementation.
OpenAI-compatible API, so the official openai client is used.
"""

from openai import AsyncOpenAI

from marketbot.config import settings
from marketbot.integrations.llm.base import BaseLLM, ChatMessage, LLMResponse


class OpenRouterLLM(BaseLLM):
    """OpenRouter LLM provider."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
    ):
        self.api_key = api_key or settings.openrouter_api_key
        self.model = model or settings.openrouter_model
        self.base_url = base_url or settings.openrouter_base_url

        if not self.api_key:
            raise ValueError(
                "OpenRouter API key not provided. "
                "Set OPENROUTER_API_KEY in .env file."
            )

        self._client = AsyncOpenAI(
            api_key=self.api_key,
            base_url=self.base_url,
            default_headers={
                "HTTP-Referer": settings.website_url,
                "X-Title": "Marketplace Bot",
            },
        )

    async def chat(
        self,
        messages: list[ChatMessage],
        temperature: float = 0.3,
        max_tokens: int = 1024,
    ) -> LLMResponse:
        """Generate reply using OpenRouter."""
        completion = await self._client.chat.completions.create(
            model=self.model,
            messages=[{"role": m.role, "content": m.content} for m in messages],
            temperature=temperature,
            max_tokens=max_tokens,
        )

        return LLMResponse(
            content=completion.choices[0].message.content or "",
            tokens_used=completion.usage.total_tokens if completion.usage else None,
            model=completion.model,
        )

    @property
    def name(self) -> str:
        return "openrouter"
