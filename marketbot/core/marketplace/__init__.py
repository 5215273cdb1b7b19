"""
Marketplace read-model and store interface.
"""

from marketbot.core.marketplace.models import (
    BoostPackage,
    Group,
    Listing,
    ListingBoost,
    PaymentStatus,
    SearchFilters,
    Seller,
    Subscription,
    SubscriptionPlan,
    Transaction,
)
from marketbot.core.marketplace.store import MarketplaceStore

__all__ = [
    "BoostPackage",
    "Group",
    "Listing",
    "ListingBoost",
    "MarketplaceStore",
    "PaymentStatus",
    "SearchFilters",
    "Seller",
    "Subscription",
    "SubscriptionPlan",
    "Transaction",
]
