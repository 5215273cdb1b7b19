"""
Telegram bot and aiogram dispatcher factories.
"""

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode

from marketbot.config import settings

_bot: Bot | None = None


def get_bot() -> Bot:
    """Get or create the bot; responses are rendered as HTML."""
    global _bot
    if _bot is None:
        _bot = Bot(
            token=settings.telegram_bot_token,
            default=DefaultBotProperties(parse_mode=ParseMode.HTML),
        )
    return _bot


def create_dispatcher(**dependencies) -> Dispatcher:
    """
    Create an aiogram dispatcher.

    Keyword arguments become workflow data and are injected into handlers
    by parameter name (e.g. `orchestrator`, `work_queue`).
    """
    return Dispatcher(**dependencies)
