"""
Outbound delivery of responses.
"""

import logging
from abc import ABC, abstractmethod

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError

from marketbot.bot.keyboards.actions import get_reply_markup
from marketbot.core.agent.models import Response

logger = logging.getLogger(__name__)


class MessageSender(ABC):
    """Pushes a response to a chat user."""

    @abstractmethod
    async def send(self, user_id: str, response: Response) -> None:
        pass


class TelegramSender(MessageSender):
    """Sends text with the actions as a reply keyboard."""

    def __init__(self, bot: Bot):
        self.bot = bot

    async def send(self, user_id: str, response: Response) -> None:
        if not response.text:
            return
        try:
            await self.bot.send_message(
                chat_id=int(user_id),
                text=response.text,
                reply_markup=get_reply_markup(response.actions),
            )
        except TelegramAPIError as e:
            logger.error(f"Failed to deliver message to {user_id}: {e}", exc_info=True)
