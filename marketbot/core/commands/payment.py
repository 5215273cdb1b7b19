"""
!fapshi / !pay commands: ad-hoc checkout links and direct mobile money requests.
"""

import logging
import re

from marketbot.core.agent.responses import format_amount
from marketbot.core.commands.base import (
    PAYMENTS_UNAVAILABLE,
    CommandHandler,
    Reply,
    payment_reference,
    timestamp,
)
from marketbot.core.errors import MarketbotError

logger = logging.getLogger(__name__)

USAGE = "Usage: !fapshi <checkout|directpay> ..."
CHECKOUT_USAGE = "Usage: !fapshi checkout <amount> <phone> <cartId>"
DIRECTPAY_USAGE = "Usage: !fapshi directpay <amount> <phone> <name> <email>"

PHONE_PATTERN = re.compile(r"^\+?\d{8,15}$")


def _parse_amount(value: str) -> float | None:
    try:
        amount = float(value.replace(",", ""))
    except ValueError:
        return None
    return amount if amount > 0 else None


class PaymentCommands(CommandHandler):
    """checkout <amount> <phone> <cartId> / directpay <amount> <phone> <name> <email>"""

    async def handle(self, args: list[str], sender: str, reply: Reply) -> None:
        if not args:
            await reply(USAGE)
            return

        sub_command = args[0].lower()
        if sub_command not in ("checkout", "directpay"):
            await reply(USAGE)
            return

        if self.payments is None:
            await reply(PAYMENTS_UNAVAILABLE)
            return

        try:
            if sub_command == "checkout":
                await self.checkout(args[1:], sender, reply)
            else:
                await self.direct_pay(args[1:], sender, reply)
        except MarketbotError as e:
            logger.error(f"Payment command {sub_command!r} failed for {sender}: {e}", exc_info=True)
            await reply("❌ Failed to process the payment. Please try again later.")

    async def checkout(self, args: list[str], sender: str, reply: Reply) -> None:
        if len(args) != 3:
            await reply(CHECKOUT_USAGE)
            return

        raw_amount, phone, cart_id = args
        amount = _parse_amount(raw_amount)
        if amount is None or not PHONE_PATTERN.match(phone):
            await reply(CHECKOUT_USAGE)
            return

        payment = await self.payments.create_checkout_payment(
            amount=amount,
            reference=payment_reference("checkout", sender, cart_id),
            user_id=sender,
            message=f"Cart {cart_id}",
        )
        await reply(
            f"Pay {format_amount(amount)} FCFA here: {payment.link}\n\n"
            "After payment, you will be notified automatically here.\n\n"
            "<i>Payment status is only available via notification, not on demand.</i>"
        )

    async def direct_pay(self, args: list[str], sender: str, reply: Reply) -> None:
        if len(args) != 4:
            await reply(DIRECTPAY_USAGE)
            return

        raw_amount, phone, name, email = args
        amount = _parse_amount(raw_amount)
        if amount is None or not PHONE_PATTERN.match(phone):
            await reply(DIRECTPAY_USAGE)
            return

        trans_id = await self.payments.direct_pay(
            amount=amount,
            phone=phone,
            reference=payment_reference("direct", sender, timestamp()),
            name=name,
            email=email,
        )
        await reply(
            f"Direct payment initiated! Transaction ID: {trans_id}\n\n"
            "Confirm the request on your phone. "
            "You will be notified automatically here when payment is confirmed."
        )
