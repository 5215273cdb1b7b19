"""
Start, help and clear command handlers.
"""

from aiogram import Router
from aiogram.filters import Command, CommandStart
from aiogram.types import Message

from marketbot.bot.keyboards.actions import get_reply_markup
from marketbot.core.agent.orchestrator import Orchestrator
from marketbot.core.agent.states import ResponseType

router = Router(name="start")


async def answer_static(message: Message, orchestrator: Orchestrator, response_type: ResponseType) -> None:
    response = await orchestrator.generator.generate(response_type, {})
    await message.answer(response.text, reply_markup=get_reply_markup(response.actions))


@router.message(CommandStart())
async def handle_start(message: Message, orchestrator: Orchestrator) -> None:
    """Handle /start command."""
    await answer_static(message, orchestrator, ResponseType.WELCOME)


@router.message(Command("help"))
async def handle_help(message: Message, orchestrator: Orchestrator) -> None:
    """Handle /help command."""
    await answer_static(message, orchestrator, ResponseType.HELP)


@router.message(Command("clear"))
async def handle_clear(message: Message, orchestrator: Orchestrator) -> None:
    """Forget the conversation and start over."""
    await orchestrator.reset(str(message.from_user.id))
    await message.answer("🔄 Conversation cleared. Let's start over!")
    await answer_static(message, orchestrator, ResponseType.WELCOME)
