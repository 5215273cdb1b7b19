"""
Shared pieces of the power-user command handlers.
"""

import time
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional

from marketbot.core.marketplace import MarketplaceStore
from marketbot.integrations.payments import PaymentProvider

Reply = Callable[[str], Awaitable[None]]

PAYMENTS_UNAVAILABLE = "❌ Payments are not available right now. Please try again later."


def payment_reference(kind: str, sender: str, *parts: str) -> str:
    """External id echoed back by the payment webhook: <kind>_<sender>_<parts...>."""
    return "_".join([kind, str(sender), *map(str, parts)])


def timestamp() -> str:
    return str(int(time.time() * 1000))


def parse_selection(value: str) -> Optional[int]:
    """1-based menu number, None when not a positive integer."""
    return int(value) if value.isdigit() and int(value) >= 1 else None


class CommandHandler(ABC):
    """Small positional-argument parser for one command family."""

    def __init__(self, store: MarketplaceStore, payments: Optional[PaymentProvider] = None):
        self.store = store
        self.payments = payments

    @abstractmethod
    async def handle(self, args: list[str], sender: str, reply: Reply) -> None:
        """Run the command and answer through `reply`."""
        pass
