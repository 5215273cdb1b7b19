"""
Response generator.
Renders the reply text and buttons for a response type, reading the
marketplace store for listings. Never raises: lookup misses and backend
failures degrade to a safe text with navigation buttons.
"""

import logging
import math
from html import escape
from typing import Any, Optional

from marketbot.config import settings
from marketbot.core.agent.models import Response
from marketbot.core.agent.states import ResponseType
from marketbot.core.errors import PaymentProviderError
from marketbot.core.marketplace import Listing, MarketplaceStore, PaymentStatus, SearchFilters
from marketbot.integrations.payments import PaymentProvider

logger = logging.getLogger(__name__)


# Buttons
BTN_SEARCH = "🔍 Search Products"
BTN_NEW_SEARCH = "🔍 New Search"
BTN_SEARCH_AGAIN = "🔍 Search Again"
BTN_BROWSE = "📂 Browse Categories"
BTN_REFINE = "🔍 Refine Search"
BTN_TRY_AGAIN = "🔄 Try Again"
BTN_HELP = "❓ Help"
BTN_MY_ORDERS = "🛍️ My Orders"
BTN_SUPPORT = "👨‍💼 Contact Support"
BTN_BUY = "💳 Buy Now"
BTN_CONTACT = "💬 Contact Seller"
BTN_CHAT = "💬 Chat with Seller"
BTN_BACK_TO_SEARCH = "🔙 Back to Search"
BTN_BACK_TO_PRODUCT = "🔙 Back to Product"
BTN_PAYMENT_SENT = "✅ Payment Sent"
BTN_CANCEL = "❌ Cancel"
BTN_TRACK = "📦 Track Order"
BTN_SHOP_MORE = "🔍 Shop More"
RATING_BUTTONS = ["⭐" * stars for stars in range(1, 6)]


WELCOME_MESSAGE = """👋 <b>Welcome to the Marketplace!</b>

You can:
• Search for products
• View your orders
• Rate sellers
• Get help
• Subscribe to premium features (<code>!subscription plans</code>)
• Boost your listings (<code>!boost packages</code>)

What would you like to do?"""

HELP_MESSAGE = """📚 <b>Marketplace Help</b>

Here's how to use our service:

• <b>Search</b>: just type what you're looking for, e.g. "TVs under 100,000 FCFA in Douala"
• <b>View a product</b>: reply with its number from the list, e.g. "2" or "#2"
• <b>View orders</b>: type "my orders" to see your purchases
• <b>Rate sellers</b>: after a purchase you can rate the seller
• <b>Contact support</b>: type "support" to get help from our team

<b>Commands:</b>
/clear to start over
/help to show this message

What would you like to do?"""

MENU_MESSAGE = "I'm not sure what you're looking for. How can I help you today?"
CANCELLED_MESSAGE = "Search cancelled. What would you like to do now?"
RATING_PROMPT_MESSAGE = (
    "Please rate your experience with the seller from 1 to 5 stars.\n"
    "Tap a button or reply with a number, e.g. \"5\"."
)
NOT_FOUND_MESSAGE = "Sorry, I couldn't find that product. It may have been sold or removed."

ERROR_FALLBACKS: dict[ResponseType, tuple[str, list[str]]] = {
    ResponseType.SEARCH_RESULTS: (
        "I'm having trouble searching for products right now. Please try again later.",
        [BTN_TRY_AGAIN, BTN_HELP],
    ),
    ResponseType.PRODUCT_VIEW: (
        "I'm having trouble retrieving product details right now. Please try again later.",
        [BTN_BACK_TO_SEARCH, BTN_HELP],
    ),
    ResponseType.CHECKOUT: (
        "I'm having trouble processing your checkout right now. Please try again later.",
        [BTN_BACK_TO_PRODUCT, BTN_HELP],
    ),
    ResponseType.CONTACT_SELLER: (
        "I'm having trouble retrieving the seller's contact information right now. "
        "Please try again later.",
        [BTN_BACK_TO_PRODUCT, BTN_HELP],
    ),
    ResponseType.PAYMENT_CONFIRMATION: (
        "I'm having trouble confirming your payment right now. "
        "Please try again later or contact support.",
        [BTN_TRY_AGAIN, BTN_SUPPORT],
    ),
    ResponseType.RATING_SUBMISSION: (
        "I'm having trouble submitting your rating right now. Please try again later.",
        [BTN_TRY_AGAIN, BTN_HELP],
    ),
}
DEFAULT_ERROR = ("Something went wrong. Please try again.", [BTN_TRY_AGAIN, BTN_HELP])


def format_amount(value: Optional[float]) -> str:
    """50000.0 -> '50,000', 12.5 -> '12.50'."""
    if value is None:
        return ""
    if float(value).is_integer():
        return f"{int(value):,}"
    return f"{value:,.2f}"


def escrow_fee(price: float, rate: Optional[float] = None) -> int:
    """Escrow fee rounded half up to a whole currency unit."""
    rate = settings.escrow_fee_rate if rate is None else rate
    return int(math.floor(price * rate + 0.5))


def order_reference(product_id: str) -> str:
    return f"MP-{product_id}"


def escrow_reference(product_id: str, buyer_id: Optional[str] = None) -> str:
    """External id of one buyer's escrow order: MP-<product>_<buyer>."""
    reference = order_reference(product_id)
    return f"{reference}_{buyer_id}" if buyer_id else reference


def describe_filters(context: dict[str, Any]) -> str:
    """Human readable echo of the applied search filters."""
    currency = context.get("currency") or settings.default_currency
    parts = []
    if context.get("query"):
        parts.append(f' for "{escape(str(context["query"]))}"')
    if context.get("category") and context.get("category") != context.get("query"):
        parts.append(f' in category "{escape(str(context["category"]))}"')
    if context.get("location"):
        parts.append(f" in {escape(str(context['location']))}")
    if context.get("min_price") is not None:
        parts.append(f" above {format_amount(context['min_price'])} {currency}")
    if context.get("max_price") is not None:
        parts.append(f" below {format_amount(context['max_price'])} {currency}")
    if context.get("exact_price") is not None:
        parts.append(f" at {format_amount(context['exact_price'])} {currency}")
    return "".join(parts)


def filters_from_context(context: dict[str, Any]) -> SearchFilters:
    return SearchFilters(
        category=context.get("category"),
        location=context.get("location"),
        min_price=context.get("min_price"),
        max_price=context.get("max_price"),
        exact_price=context.get("exact_price"),
    )


def error_response(response_type: Any) -> Response:
    text, actions = ERROR_FALLBACKS.get(response_type, DEFAULT_ERROR)
    return Response(text=text, actions=list(actions))


def not_found_response() -> Response:
    return Response(text=NOT_FOUND_MESSAGE, actions=[BTN_BACK_TO_SEARCH, BTN_HELP])


class ResponseGenerator:
    """Builds replies for the conversation state machine."""

    def __init__(
        self,
        store: MarketplaceStore,
        payments: Optional[PaymentProvider] = None,
        search_limit: Optional[int] = None,
    ):
        self.store = store
        self.payments = payments
        self.search_limit = search_limit or settings.search_limit

    async def generate(self, response_type: Any, context: dict[str, Any]) -> Response:
        """
        Generate a response.

        Args:
            response_type: ResponseType (unknown values render the generic menu)
            context: Session context plus per-turn values (user_id, rating)

        Returns:
            Response with text, buttons and optional data for the caller
        """
        handlers = {
            ResponseType.SEARCH_RESULTS: self._search_results,
            ResponseType.PRODUCT_VIEW: self._product_view,
            ResponseType.CHECKOUT: self._checkout,
            ResponseType.CONTACT_SELLER: self._contact_seller,
            ResponseType.PAYMENT_CONFIRMATION: self._payment_confirmation,
            ResponseType.RATING_SUBMISSION: self._rating_submission,
        }
        static = {
            ResponseType.WELCOME: (WELCOME_MESSAGE, [BTN_SEARCH, BTN_MY_ORDERS, BTN_HELP]),
            ResponseType.HELP: (HELP_MESSAGE, [BTN_SEARCH, BTN_MY_ORDERS, BTN_SUPPORT]),
            ResponseType.CANCELLED: (CANCELLED_MESSAGE, [BTN_SEARCH_AGAIN, BTN_MY_ORDERS, BTN_HELP]),
            ResponseType.RATING_PROMPT: (RATING_PROMPT_MESSAGE, RATING_BUTTONS),
        }

        if response_type in static:
            text, actions = static[response_type]
            return Response(text=text, actions=list(actions))

        handler = handlers.get(response_type)
        if handler is None:
            return Response(text=MENU_MESSAGE, actions=[BTN_SEARCH, BTN_HELP])

        try:
            return await handler(context)
        except Exception as e:
            logger.error(f"Failed to generate {response_type} response: {e}", exc_info=True)
            return error_response(response_type)

    async def _load_product(self, context: dict[str, Any]) -> Optional[Listing]:
        product_id = context.get("active_product_id")
        if not product_id:
            return None
        return await self.store.get_listing_by_id(str(product_id))

    async def _search_results(self, context: dict[str, Any]) -> Response:
        listings = await self.store.search_listings(
            context.get("query"), filters_from_context(context), limit=self.search_limit
        )
        echo = describe_filters(context)

        if not listings:
            return Response(
                text=(
                    f"Sorry, I couldn't find any products matching your search{echo}.\n\n"
                    "Try a different search or browse our categories."
                ),
                actions=[BTN_NEW_SEARCH, BTN_BROWSE],
                data={"result_ids": []},
            )

        lines = [f"Here are the products{echo}:", ""]
        for index, listing in enumerate(listings, start=1):
            boosted = " 🔥" if listing.is_boosted else ""
            lines.append(f"<b>{index}. {escape(listing.title)}</b>{boosted}")
            lines.append(f"💰 {format_amount(listing.price)} {listing.currency}")
            if listing.location:
                lines.append(f"📍 {escape(listing.location)}")
            lines.append(f'Reply with "{index}" or "#{index}" to view details.')
            lines.append("")

        lines.append(
            "To refine your search, you can specify:\n"
            '• Location (e.g. "in Douala")\n'
            '• Price range (e.g. "under 50,000 FCFA")\n'
            '• Category (e.g. "looking for electronics")'
        )

        actions = [
            f"#{index} {listing.short_title()}"
            for index, listing in enumerate(listings[:3], start=1)
        ]
        actions.append(BTN_REFINE)

        return Response(
            text="\n".join(lines),
            actions=actions,
            data={"result_ids": [listing.id for listing in listings]},
        )

    async def _product_view(self, context: dict[str, Any]) -> Response:
        listing = await self._load_product(context)
        if listing is None:
            return not_found_response()

        await self.store.increment_view_count(listing.id)

        lines = [
            f"<b>{escape(listing.title)}</b>",
            "",
            f"💰 <b>Price:</b> {format_amount(listing.price)} {listing.currency}",
        ]
        if listing.location:
            lines.append(f"📍 <b>Location:</b> {escape(listing.location)}")
        if listing.category:
            lines.append(f"📂 <b>Category:</b> {escape(listing.category)}")
        lines.append(f"👤 <b>Seller:</b> {escape(listing.seller.name)}")
        if listing.seller.rating:
            lines.append(f"⭐ <b>Rating:</b> {listing.seller.rating:.1f}/5")
        if listing.description:
            lines.extend(["", escape(listing.description)])
        lines.extend([
            "",
            "What would you like to do with this product?",
            "Type /clear to start a new search.",
        ])

        return Response(text="\n".join(lines), actions=[BTN_BUY, BTN_CONTACT, BTN_BACK_TO_SEARCH])

    async def _payment_link(
        self, external_id: str, total: float, context: dict[str, Any]
    ) -> tuple[Optional[str], Optional[str]]:
        """Provider checkout link and transaction id, reused across re-renders of the same order."""
        previous = context.get("checkout_info") or {}
        if previous.get("external_id") == external_id and previous.get("link"):
            return previous["link"], previous.get("trans_id")

        if self.payments is None:
            return None, None

        try:
            payment = await self.payments.create_checkout_payment(
                amount=total,
                reference=external_id,
                user_id=context.get("user_id"),
            )
        except PaymentProviderError as e:
            logger.warning(f"Checkout link unavailable for {external_id}: {e}")
            return None, None
        return payment.link, payment.trans_id

    async def _checkout(self, context: dict[str, Any]) -> Response:
        listing = await self._load_product(context)
        if listing is None:
            return not_found_response()

        buyer_id = str(context.get("user_id") or "")
        fee = escrow_fee(listing.price)
        total = listing.price + fee
        reference = order_reference(listing.id)
        external_id = escrow_reference(listing.id, buyer_id)
        currency = listing.currency
        link, trans_id = await self._payment_link(external_id, total, context)

        # The order exists before any payment so an early webhook finds it
        await self.store.record_transaction(
            reference=external_id,
            listing_id=listing.id,
            buyer_id=buyer_id,
            amount=listing.price,
            escrow_fee=fee,
            currency=currency,
            provider_reference=trans_id,
        )

        lines = [
            "<b>Checkout Summary</b>",
            "",
            f"<b>{escape(listing.title)}</b>",
            f"💰 <b>Price:</b> {format_amount(listing.price)} {currency}",
            f"🔒 <b>Escrow Fee:</b> {format_amount(fee)} {currency}",
            f"💵 <b>Total:</b> {format_amount(total)} {currency}",
            "",
            f"To complete your purchase, please send {format_amount(total)} {currency} using Fapshi.",
            "",
            "<b>Payment Instructions:</b>",
        ]
        if link:
            lines.append(f"1. Pay securely here: {link}")
        else:
            lines.append("1. Open your Fapshi app")
            lines.append(f"   Send payment to: {settings.escrow_payment_number}")
        lines.extend([
            f"2. Use reference: <b>{reference}</b>",
            '3. Reply with "Payment sent" when complete',
            "",
            "Your payment will be held in escrow until you confirm receipt of the product.",
        ])

        return Response(
            text="\n".join(lines),
            actions=[BTN_PAYMENT_SENT, BTN_CANCEL],
            data={"checkout_info": {
                "reference": reference,
                "external_id": external_id,
                "total": total,
                "link": link,
                "trans_id": trans_id,
            }},
        )

    async def _contact_seller(self, context: dict[str, Any]) -> Response:
        listing = await self._load_product(context)
        if listing is None:
            return not_found_response()

        lines = [
            "<b>Contact Seller</b>",
            "",
            f"You can contact the seller of <b>{escape(listing.title)}</b> directly:",
            "",
            f"👤 <b>Name:</b> {escape(listing.seller.name)}",
        ]
        if listing.seller.phone:
            lines.append(f"📱 <b>WhatsApp:</b> {escape(listing.seller.phone)}")
        lines.extend([
            "",
            "Remember to mention the product you're interested in!",
        ])

        return Response(text="\n".join(lines), actions=[BTN_CHAT, BTN_BACK_TO_PRODUCT])

    async def _payment_confirmation(self, context: dict[str, Any]) -> Response:
        listing = await self._load_product(context)
        if listing is None:
            return not_found_response()

        fee = escrow_fee(listing.price)
        reference = order_reference(listing.id)
        transaction = await self.store.get_transaction(
            escrow_reference(listing.id, str(context.get("user_id") or ""))
        )

        if transaction is not None and transaction.status is PaymentStatus.COMPLETED:
            status_line = "We have already received your payment and it is held in escrow."
        else:
            status_line = (
                f"Your payment of {format_amount(listing.price + fee)} {listing.currency} "
                "is being processed and will be held in escrow."
            )

        text = (
            "<b>Payment Confirmation</b>\n\n"
            f"Thank you for your payment for <b>{escape(listing.title)}</b>!\n\n"
            f"{status_line}\n\n"
            "<b>Next Steps:</b>\n"
            "1. We've notified the seller about your purchase\n"
            "2. The seller will contact you to arrange delivery\n"
            "3. Once the payment is confirmed you'll be asked to rate the seller\n\n"
            f"Your order reference is: <b>{reference}</b>\n"
            "Please keep this reference for tracking your order.\n\n"
            "Type /clear to start a new search."
        )
        return Response(text=text, actions=[BTN_TRACK, BTN_SHOP_MORE])

    async def _rating_submission(self, context: dict[str, Any]) -> Response:
        listing = await self._load_product(context)
        if listing is None:
            return not_found_response()

        stars = int(context["rating"])
        await self.store.submit_rating(listing.id, str(context.get("user_id", "")), stars)

        plural = "" if stars == 1 else "s"
        text = (
            "<b>Rating Submitted</b>\n\n"
            f"Thank you for rating your experience with <b>{escape(listing.seller.name)}</b> "
            f"for the purchase of <b>{escape(listing.title)}</b>!\n\n"
            f"You gave the seller {stars} star{plural}.\n\n"
            "Your feedback helps other buyers make informed decisions."
        )
        return Response(text=text, actions=[BTN_SHOP_MORE, BTN_MY_ORDERS])
