"""
!subscription commands: premium plans paid through Fapshi.
"""

import logging
from html import escape

from marketbot.core.agent.responses import format_amount
from marketbot.core.commands.base import (
    PAYMENTS_UNAVAILABLE,
    CommandHandler,
    Reply,
    parse_selection,
    payment_reference,
    timestamp,
)
from marketbot.core.errors import MarketbotError

logger = logging.getLogger(__name__)

USAGE = (
    "Available commands:\n\n"
    "!subscription plans - View available subscription plans\n"
    "!subscription subscribe [plan_number] - Subscribe to a plan\n"
    "!subscription status - Check your current subscription status"
)


class SubscriptionCommands(CommandHandler):
    """plans / subscribe <n> / status"""

    async def handle(self, args: list[str], sender: str, reply: Reply) -> None:
        if not args:
            await self.show_status(sender, reply)
            return

        sub_command = args[0].lower()
        try:
            if sub_command == "plans":
                await self.show_plans(reply)
            elif sub_command == "subscribe":
                await self.subscribe(args[1:], sender, reply)
            elif sub_command == "status":
                await self.show_status(sender, reply)
            else:
                await reply(f"❌ Unknown subscription command. {USAGE}")
        except MarketbotError as e:
            logger.error(f"Subscription command {sub_command!r} failed for {sender}: {e}", exc_info=True)
            await reply("❌ Failed to process subscription request. Please try again later.")

    async def show_plans(self, reply: Reply) -> None:
        plans = await self.store.list_subscription_plans()
        if not plans:
            await reply("❌ No subscription plans are currently available.")
            return

        lines = ["<b>Available Subscription Plans</b>", ""]
        for index, plan in enumerate(plans, start=1):
            lines.append(f"<b>{index}. {escape(plan.name)}</b>")
            lines.append(f"Price: {format_amount(plan.price)} {plan.currency}")
            lines.append(f"Duration: {plan.duration_days} days")
            if plan.features:
                lines.append("Features:")
                lines.extend(
                    f"- {escape(key.replace('_', ' '))}: {escape(str(value))}"
                    for key, value in plan.features.items()
                )
            lines.append("")
        lines.append("To subscribe, send:\n!subscription subscribe [plan_number]")
        lines.append("For example: !subscription subscribe 1")
        await reply("\n".join(lines))

    async def subscribe(self, args: list[str], sender: str, reply: Reply) -> None:
        if len(args) != 1:
            await reply(
                "❌ Please specify a plan number. For example: !subscription subscribe 1\n\n"
                "To see available plans, send: !subscription plans"
            )
            return

        number = parse_selection(args[0])
        if number is None:
            await reply("❌ Invalid plan number. Please enter a valid number.")
            return

        plans = await self.store.list_subscription_plans()
        if not plans:
            await reply("❌ No subscription plans are currently available.")
            return
        if number > len(plans):
            await reply(f"❌ Invalid plan number. Available plans are 1-{len(plans)}.")
            return

        if self.payments is None:
            await reply(PAYMENTS_UNAVAILABLE)
            return

        plan = plans[number - 1]
        reference = payment_reference("sub", sender, plan.id, timestamp())
        payment = await self.payments.create_checkout_payment(
            amount=plan.price,
            reference=reference,
            user_id=sender,
            message=f"{plan.name} Subscription - {plan.duration_days} days",
        )
        await self.store.create_subscription(sender, plan, reference)
        logger.info(f"User {sender} started subscription payment {reference}")

        await reply(
            f"<b>{escape(plan.name)} Subscription</b>\n\n"
            f"Price: {format_amount(plan.price)} {plan.currency}\n"
            f"Duration: {plan.duration_days} days\n\n"
            f"To complete your subscription, please make a payment using this link:\n{payment.link}\n\n"
            "Your subscription will be activated immediately after payment."
        )

    async def show_status(self, sender: str, reply: Reply) -> None:
        subscription = await self.store.get_active_subscription(sender)
        if subscription is None:
            await reply(
                "<b>Subscription Status</b>\n\n"
                "You do not have an active subscription.\n\n"
                "To view available subscription plans, send: !subscription plans"
            )
            return

        await reply(
            "<b>Subscription Status</b>\n\n"
            f"Plan: {escape(subscription.plan_name)}\n"
            "Status: Active\n"
            f"Expires: {subscription.end_date:%Y-%m-%d}\n"
            f"Days remaining: {subscription.days_remaining}\n\n"
            "To renew your subscription, send: !subscription plans"
        )
