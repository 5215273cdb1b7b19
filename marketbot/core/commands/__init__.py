"""
Command router for prefixed power-user commands (e.g. "!boost packages").
"""

import logging
from typing import Optional

from marketbot.config import settings
from marketbot.core.commands.base import CommandHandler, Reply
from marketbot.core.commands.boost import BoostCommands
from marketbot.core.commands.payment import PaymentCommands
from marketbot.core.commands.subscription import SubscriptionCommands
from marketbot.core.marketplace import MarketplaceStore
from marketbot.integrations.payments import PaymentProvider

logger = logging.getLogger(__name__)


class CommandRouter:
    """Dispatches on the first token after the prefix."""

    def __init__(
        self,
        store: MarketplaceStore,
        payments: Optional[PaymentProvider] = None,
        prefix: Optional[str] = None,
    ):
        self.prefix = prefix or settings.command_prefix
        subscription = SubscriptionCommands(store, payments)
        boost = BoostCommands(store, payments)
        payment = PaymentCommands(store, payments)
        self.handlers: dict[str, CommandHandler] = {
            "subscription": subscription,
            "subscribe": subscription,
            "boost": boost,
            "fapshi": payment,
            "pay": payment,
        }

    async def route(self, text: str, sender: str, reply: Reply) -> bool:
        """
        Route a prefixed command.

        Args:
            text: Raw message, e.g. "!subscription plans"
            sender: User id of the sender
            reply: Coroutine used to answer

        Returns:
            True if a handler took the command, False for unknown commands
        """
        text = (text or "").strip()
        if not text.startswith(self.prefix):
            return False

        parts = text[len(self.prefix):].split()
        if not parts:
            return False

        handler = self.handlers.get(parts[0].lower())
        if handler is None:
            return False

        logger.info(f"Command {parts[0].lower()!r} from {sender}")
        await handler.handle(parts[1:], str(sender), reply)
        return True


__all__ = ["CommandRouter", "Reply"]
