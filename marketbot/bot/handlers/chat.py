"""
Free-text handler: acknowledge and hand the message to the user's queue.
"""

import logging

from aiogram import F, Router
from aiogram.enums import ChatAction
from aiogram.types import Message

from marketbot.core.dispatcher import UserWorkQueue

router = Router(name="chat")
logger = logging.getLogger(__name__)


@router.message(F.text)
async def handle_message(message: Message, work_queue: UserWorkQueue) -> None:
    """
    Enqueue the message; the reply is delivered by the queue's drain task
    so a slow turn never blocks polling.
    """
    text = message.text.strip()
    if not text:
        return

    user_id = str(message.from_user.id)
    logger.debug(f"Message from {user_id}: {text[:50]}")

    await message.bot.send_chat_action(chat_id=message.chat.id, action=ChatAction.TYPING)
    work_queue.submit(user_id, text)
