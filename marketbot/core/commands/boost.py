"""
!boost commands: paid ranking priority for a seller's listings.
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
from marketbot.core.marketplace import Listing

logger = logging.getLogger(__name__)

USAGE = (
    "Available commands:\n"
    "!boost packages - View available boost packages\n"
    "!boost boost [listing_id] [package_number] - Boost a listing\n"
    "!boost status [listing_id] - Check boost status for a listing\n"
    "!boost listings - View your listings"
)

NOT_OWNER = (
    "❌ Listing not found or you do not have permission to boost it.\n\n"
    "To see your listings, send: !boost listings"
)


def _days(hours: int) -> str:
    days = hours / 24
    label = f"{days:g}"
    return f"{label} day" if days == 1 else f"{label} days"


class BoostCommands(CommandHandler):
    """packages / boost <listing_id> <n> / status <listing_id> / listings"""

    async def handle(self, args: list[str], sender: str, reply: Reply) -> None:
        if not args:
            await reply(
                "<b>Boost Your Listings</b>\n\n"
                "Make your listings stand out and get more visibility with our boosting packages!\n\n"
                + USAGE
            )
            return

        sub_command = args[0].lower()
        try:
            if sub_command == "packages":
                await self.show_packages(reply)
            elif sub_command == "boost":
                await self.boost(args[1:], sender, reply)
            elif sub_command == "status":
                await self.show_status(args[1:], sender, reply)
            elif sub_command == "listings":
                await self.show_listings(sender, reply)
            else:
                await reply(f"❌ Unknown boost command. {USAGE}")
        except MarketbotError as e:
            logger.error(f"Boost command {sub_command!r} failed for {sender}: {e}", exc_info=True)
            await reply("❌ Failed to process boost request. Please try again later.")

    async def _owned_listing(self, listing_id: str, sender: str) -> Listing | None:
        listings = await self.store.get_seller_listings(sender, limit=100)
        return next((listing for listing in listings if listing.id == listing_id), None)

    async def show_packages(self, reply: Reply) -> None:
        packages = await self.store.list_boost_packages()
        if not packages:
            await reply("❌ No boost packages are currently available.")
            return

        lines = ["<b>Available Boost Packages</b>", ""]
        for index, package in enumerate(packages, start=1):
            lines.append(f"<b>{index}. {escape(package.name)}</b>")
            lines.append(f"Price: {format_amount(package.price)} {package.currency}")
            lines.append(f"Duration: {_days(package.duration_hours)}")
            lines.append(f"Priority Level: {package.priority_level}")
            if package.description:
                lines.append(escape(package.description))
            lines.append("")
        lines.append("To boost a listing, send:\n!boost boost [listing_id] [package_number]")
        lines.append("For example: !boost boost 12 1\n\nTo see your listings, send: !boost listings")
        await reply("\n".join(lines))

    async def boost(self, args: list[str], sender: str, reply: Reply) -> None:
        if len(args) != 2:
            await reply(
                "❌ Please specify both listing ID and package number.\n"
                "For example: !boost boost 12 1\n\n"
                "To see your listings, send: !boost listings\n"
                "To see available packages, send: !boost packages"
            )
            return

        listing_id, raw_number = args
        number = parse_selection(raw_number)
        if number is None:
            await reply("❌ Invalid package number. Please enter a valid number.")
            return

        listing = await self._owned_listing(listing_id, sender)
        if listing is None:
            await reply(NOT_OWNER)
            return

        existing = await self.store.get_active_boost(listing_id)
        if existing is not None:
            await reply(
                "❌ This listing is already boosted.\n\n"
                f"Current boost: {escape(existing.package_name)}\n"
                f"Expires: {existing.end_date:%Y-%m-%d %H:%M}"
            )
            return

        packages = await self.store.list_boost_packages()
        if not packages:
            await reply("❌ No boost packages are currently available.")
            return
        if number > len(packages):
            await reply(f"❌ Invalid package number. Available packages are 1-{len(packages)}.")
            return

        if self.payments is None:
            await reply(PAYMENTS_UNAVAILABLE)
            return

        package = packages[number - 1]
        reference = payment_reference("boost", sender, listing_id, timestamp())
        payment = await self.payments.create_checkout_payment(
            amount=package.price,
            reference=reference,
            user_id=sender,
            message=f"{package.name} for listing: {listing.title[:30]}",
        )
        await self.store.create_boost(listing_id, package, reference)
        logger.info(f"User {sender} started boost payment {reference}")

        await reply(
            "<b>Boost Your Listing</b>\n\n"
            f"Listing: {escape(listing.title)}\n"
            f"Package: {escape(package.name)}\n"
            f"Price: {format_amount(package.price)} {package.currency}\n"
            f"Duration: {_days(package.duration_hours)}\n\n"
            f"To complete your boost, please make a payment using this link:\n{payment.link}\n\n"
            "Your listing will be boosted immediately after payment."
        )

    async def show_status(self, args: list[str], sender: str, reply: Reply) -> None:
        if len(args) != 1:
            await reply(
                "❌ Please specify a listing ID.\n"
                "For example: !boost status 12\n\n"
                "To see your listings, send: !boost listings"
            )
            return

        listing_id = args[0]
        listing = await self._owned_listing(listing_id, sender)
        if listing is None:
            await reply(NOT_OWNER)
            return

        boost = await self.store.get_active_boost(listing_id)
        if boost is None:
            await reply(
                "<b>Boost Status</b>\n\n"
                f"Listing: {escape(listing.title)}\n"
                "Status: Not boosted\n\n"
                f"To boost this listing, send: !boost boost {listing_id} [package_number]\n"
                "To see available packages, send: !boost packages"
            )
            return

        await reply(
            "<b>Boost Status</b>\n\n"
            f"Listing: {escape(listing.title)}\n"
            f"Package: {escape(boost.package_name)}\n"
            "Status: Active\n"
            f"Expires: {boost.end_date:%Y-%m-%d %H:%M}\n"
            f"Hours remaining: {boost.hours_remaining}"
        )

    async def show_listings(self, sender: str, reply: Reply) -> None:
        listings = await self.store.get_seller_listings(sender)
        if not listings:
            await reply("❌ You do not have any active listings.")
            return

        lines = ["<b>Your Listings</b>", ""]
        for listing in listings:
            boosted = " 🔥" if listing.is_boosted else ""
            lines.append(
                f"<b>ID {listing.id}</b>: {escape(listing.title)} - "
                f"{format_amount(listing.price)} {listing.currency}{boosted}"
            )
        lines.extend(["", "To boost a listing, send: !boost boost [listing_id] [package_number]"])
        await reply("\n".join(lines))
