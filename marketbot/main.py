"""
Marketplace bot - main entry point.
"""

import asyncio
import logging
import sys
from contextlib import suppress
from datetime import timedelta

from aiohttp import web

from marketbot.bot.bot import create_dispatcher, get_bot
from marketbot.bot.delivery import TelegramSender
from marketbot.bot.handlers import register_handlers
from marketbot.bot.webhook import create_webhook_app
from marketbot.config import settings
from marketbot.core.agent.ai import AIExtractor
from marketbot.core.agent.models import ConversationSession
from marketbot.core.agent.orchestrator import Orchestrator
from marketbot.core.agent.responses import ResponseGenerator
from marketbot.core.commands import CommandRouter
from marketbot.core.dispatcher import Dispatcher, UserWorkQueue
from marketbot.core.payments import PaymentWebhookHandler
from marketbot.core.registration import RegistrationFlow, RegistrationSession
from marketbot.core.sessions import SessionManager, create_session_store
from marketbot.db.repository import SqlMarketplaceStore
from marketbot.db.sqlite import db
from marketbot.integrations.llm import get_default_llm
from marketbot.integrations.payments import get_default_payments


# Fix for Windows asyncio
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())


# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def build_orchestrator() -> tuple[Orchestrator, RegistrationFlow, PaymentWebhookHandler]:
    """Wire the conversational core against the SQL store."""
    store = SqlMarketplaceStore(db)
    payments = get_default_payments()
    idle_timeout = timedelta(minutes=settings.session_idle_timeout_minutes)

    conversations = SessionManager(
        create_session_store("conversation", db),
        factory=ConversationSession,
        loader=ConversationSession.from_dict,
        idle_timeout=idle_timeout,
    )
    registrations = SessionManager(
        create_session_store("registration", db),
        factory=RegistrationSession,
        loader=RegistrationSession.from_dict,
        idle_timeout=idle_timeout,
    )

    ai_extractor = None
    llm = get_default_llm() if settings.use_ai_agent else None
    if llm is not None:
        ai_extractor = AIExtractor(llm)
        logger.info(f"AI extraction enabled ({llm.name})")

    orchestrator = Orchestrator(
        sessions=conversations,
        generator=ResponseGenerator(store, payments),
        ai_extractor=ai_extractor,
        commands=CommandRouter(store, payments),
    )
    registration = RegistrationFlow(store, registrations)
    webhook = PaymentWebhookHandler(store, orchestrator)
    return orchestrator, registration, webhook


async def sweep_sessions(*managers: SessionManager) -> None:
    """Periodically drop idle sessions."""
    while True:
        await asyncio.sleep(settings.session_sweep_interval_seconds)
        for manager in managers:
            try:
                await manager.sweep_expired()
            except Exception as e:
                logger.error(f"Session sweep failed: {e}", exc_info=True)


async def main() -> None:
    """Main function to run the bot."""
    logger.info("Starting marketplace bot...")
    await db.init()
    logger.info("Database initialized")

    bot = get_bot()
    sender = TelegramSender(bot)
    orchestrator, registration, webhook = build_orchestrator()
    work_queue = UserWorkQueue(Dispatcher(orchestrator, registration), sender.send)

    dp = create_dispatcher(orchestrator=orchestrator, work_queue=work_queue)
    register_handlers(dp)

    sweeper = asyncio.create_task(sweep_sessions(orchestrator.sessions, registration.sessions))

    runner = None
    if settings.webhook_port:
        runner = web.AppRunner(create_webhook_app(webhook, sender, settings.webhook_path))
        await runner.setup()
        await web.TCPSite(runner, settings.webhook_host, settings.webhook_port).start()
        logger.info(f"Payment webhook listening on :{settings.webhook_port}{settings.webhook_path}")

    logger.info("Bot is starting...")
    try:
        await dp.start_polling(bot, allowed_updates=dp.resolve_used_update_types())
    finally:
        logger.info("Shutting down marketplace bot...")
        sweeper.cancel()
        with suppress(asyncio.CancelledError):
            await sweeper
        await work_queue.close()
        if runner is not None:
            await runner.cleanup()
        await bot.session.close()
        await db.close()
        logger.info("Cleanup complete")


if __name__ == "__main__":
    asyncio.run(main())
