"""
Payment webhook handling.
Applies provider status updates to subscriptions, boosts and escrow
transactions and tells the caller whom to notify.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from marketbot.core.agent.models import Response
from marketbot.core.agent.orchestrator import Orchestrator
from marketbot.core.agent.responses import BTN_HELP, BTN_SEARCH, order_reference
from marketbot.core.marketplace import MarketplaceStore, PaymentStatus

logger = logging.getLogger(__name__)

SUCCESSFUL = "SUCCESSFUL"
FAILED_STATUSES = {"FAILED", "EXPIRED"}

ESCROW_PREFIX = order_reference("")


@dataclass
class Notification:
    """Message to push to a user after a status update."""
    user_id: str
    response: Response


def split_reference(external_id: str) -> tuple[str, str, str]:
    """`<kind>_<user>_<rest>` -> (kind, user, rest). Missing parts are empty."""
    parts = external_id.split("_", 2)
    parts += [""] * (3 - len(parts))
    return parts[0], parts[1], parts[2]


class PaymentWebhookHandler:
    """Routes a provider webhook by the external id we sent with the payment."""

    def __init__(self, store: MarketplaceStore, orchestrator: Optional[Orchestrator] = None):
        self.store = store
        self.orchestrator = orchestrator

    async def handle(self, payload: dict[str, Any]) -> Optional[Notification]:
        """
        Apply one status update.

        Args:
            payload: {transId, status, externalId, amount}

        Returns:
            Notification for the affected user, or None when nothing is known
            about the reference or the status is not final
        """
        external_id = str(payload.get("externalId") or "")
        status = str(payload.get("status") or "").upper()
        trans_id = payload.get("transId")

        if status != SUCCESSFUL and status not in FAILED_STATUSES:
            logger.info(f"Ignoring non-final status {status!r} for {external_id!r}")
            return None

        succeeded = status == SUCCESSFUL
        logger.info(f"Payment {trans_id} for {external_id!r}: {status}")

        if external_id.startswith(ESCROW_PREFIX):
            return await self._escrow(external_id, succeeded, trans_id)

        kind, user_id, rest = split_reference(external_id)
        if kind == "sub":
            return await self._subscription(external_id, user_id, succeeded)
        if kind == "boost":
            return await self._boost(external_id, user_id, rest, succeeded)
        if kind in ("checkout", "direct") and user_id:
            return self._direct(user_id, payload.get("amount"), succeeded)

        logger.warning(f"Webhook for unknown reference {external_id!r}")
        return None

    async def _subscription(self, reference: str, user_id: str, succeeded: bool) -> Optional[Notification]:
        status = PaymentStatus.ACTIVE if succeeded else PaymentStatus.FAILED
        subscription = await self.store.set_subscription_status(reference, status)
        if subscription is None:
            logger.warning(f"No subscription for reference {reference!r}")
            return None

        if succeeded:
            text = (
                f"✅ Your <b>{subscription.plan_name}</b> subscription is now active "
                f"until {subscription.end_date:%Y-%m-%d}."
            )
        else:
            text = "❌ Your subscription payment did not go through. Use !subscription plans to try again."
        return Notification(subscription.user_id or user_id, Response(text=text))

    async def _boost(
        self, reference: str, user_id: str, rest: str, succeeded: bool
    ) -> Optional[Notification]:
        status = PaymentStatus.ACTIVE if succeeded else PaymentStatus.FAILED
        boost = await self.store.set_boost_status(reference, status)
        if boost is None:
            logger.warning(f"No boost for reference {reference!r}")
            return None

        if succeeded:
            text = (
                f"🚀 Listing {boost.listing_id} is boosted with <b>{boost.package_name}</b> "
                f"for the next {boost.hours_remaining} hours."
            )
        else:
            text = f"❌ The boost payment for listing {boost.listing_id} did not go through."
        return Notification(user_id, Response(text=text))

    def _direct(self, user_id: str, amount: Any, succeeded: bool) -> Notification:
        if succeeded:
            text = f"✅ Payment of {amount} FCFA received. Thank you!"
        else:
            text = "❌ Your payment did not go through. Please try again."
        return Notification(user_id, Response(text=text))

    async def _escrow(self, external_id: str, succeeded: bool, trans_id: Any) -> Optional[Notification]:
        # MP-<listing>_<buyer> names one buyer's order
        status = PaymentStatus.COMPLETED if succeeded else PaymentStatus.FAILED
        transaction = await self.store.set_transaction_status(
            external_id, status, str(trans_id) if trans_id else None
        )
        if transaction is None:
            logger.warning(f"No pending transaction for reference {external_id!r}")
            return None
        reference = order_reference(transaction.listing_id)

        if not succeeded:
            return Notification(
                transaction.buyer_id,
                Response(
                    text=f"❌ The payment for order {reference} did not go through. You can try again from the product page.",
                    actions=[BTN_SEARCH, BTN_HELP],
                ),
            )

        if self.orchestrator is None:
            return Notification(
                transaction.buyer_id,
                Response(text=f"✅ Order {reference} is complete. Thank you for your purchase!"),
            )

        response = await self.orchestrator.request_rating(transaction.buyer_id, transaction.listing_id)
        return Notification(transaction.buyer_id, response)
