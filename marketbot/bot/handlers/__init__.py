"""
Bot handlers registration.
"""

from aiogram import Dispatcher

from marketbot.bot.handlers.chat import router as chat_router
from marketbot.bot.handlers.start import router as start_router


def register_handlers(dp: Dispatcher) -> None:
    """Register all handlers to dispatcher."""
    # Commands first, the catch-all text handler last
    dp.include_router(start_router)
    dp.include_router(chat_router)
