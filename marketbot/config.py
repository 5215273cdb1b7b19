"""
Configuration management for the marketplace bot.
Loads settings from environment variables with validation.
"""

from pathlib import Path
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths
    data_dir: Path = Path(__file__).parent.parent / "data"

    # Telegram
    telegram_bot_token: str = Field(..., description="Telegram Bot API token")

    # AI-backed extraction
    use_ai_agent: bool = Field(
        default=False, description="Try the LLM extractor before the rule-based one"
    )
    llm_provider: Literal["gigachat", "openrouter"] = Field(
        default="openrouter", description="LLM provider to use"
    )
    ai_timeout_seconds: float = Field(
        default=8.0, description="Upper bound for a single LLM extraction call"
    )

    # GigaChat
    gigachat_credentials: Optional[str] = Field(
        default=None, description="GigaChat API credentials"
    )
    gigachat_scope: str = Field(
        default="GIGACHAT_API_PERS", description="GigaChat API scope"
    )

    # OpenRouter
    openrouter_api_key: Optional[str] = Field(default=None, description="OpenRouter API key")
    openrouter_base_url: str = Field(
        default="https://openrouter.ai/api/v1", description="OpenRouter API base URL"
    )
    openrouter_model: str = Field(default="openai/gpt-4o", description="OpenRouter model")

    # Fapshi payments
    fapshi_api_user: Optional[str] = Field(default=None, description="Fapshi API user")
    fapshi_api_key: Optional[str] = Field(default=None, description="Fapshi API key")
    fapshi_base_url: str = Field(
        default="https://live.fapshi.com", description="Fapshi API base URL"
    )
    fapshi_timeout_seconds: float = Field(default=15.0, description="Fapshi HTTP timeout")

    # Payment webhook endpoint (disabled when no port is set)
    webhook_host: str = Field(default="0.0.0.0", description="Webhook listen address")
    webhook_port: Optional[int] = Field(default=None, description="Webhook listen port")
    webhook_path: str = Field(default="/payments/fapshi", description="Webhook URL path")

    # Database
    database_url: Optional[str] = Field(
        default=None,
        description="Database connection URL",
    )

    @property
    def db_url(self) -> str:
        """Get database URL with absolute path."""
        if self.database_url:
            return self.database_url
        return f"sqlite+aiosqlite:///{self.data_dir / 'marketplace.db'}"

    # Sessions
    session_store: Literal["memory", "database"] = Field(
        default="memory", description="Where conversation sessions are kept"
    )
    session_idle_timeout_minutes: int = Field(
        default=30, description="Idle time after which a session is evicted"
    )
    session_sweep_interval_seconds: int = Field(
        default=300, description="How often the idle sweep runs"
    )
    history_limit: int = Field(
        default=20, description="Number of turns kept per session"
    )

    # Conversation
    command_prefix: str = Field(default="!", description="Prefix for power-user commands")
    search_limit: int = Field(default=5, description="Listings shown per search")
    default_currency: str = Field(default="FCFA", description="Currency when none is given")

    # Escrow
    escrow_fee_rate: float = Field(default=0.05, description="Escrow fee share of the price")
    escrow_payment_number: str = Field(
        default="+237 6XX XXX XXX", description="Number buyers send escrow payments to"
    )

    # Public site
    website_url: str = Field(
        default="http://localhost:3000", description="Public website for setup guides"
    )

    # Debug
    debug: bool = Field(default=False, description="Debug mode")


# Global settings instance
settings = Settings()
