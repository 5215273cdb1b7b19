"""
Base interface for the marketplace backend.
The conversational core only talks to this interface, so the SQL adapter
can be swapped for a remote API without touching the agent.
"""

from abc import ABC, abstractmethod
from typing import Optional

from marketbot.core.marketplace.models import (
    BoostPackage,
    Group,
    Listing,
    ListingBoost,
    PaymentStatus,
    SearchFilters,
    Subscription,
    SubscriptionPlan,
    Transaction,
)


class MarketplaceStore(ABC):
    """Abstract marketplace read-model and write operations."""

    # Listings

    @abstractmethod
    async def search_listings(
        self,
        query: Optional[str],
        filters: SearchFilters,
        limit: int = 5,
    ) -> list[Listing]:
        """
        Search active listings.

        Args:
            query: Free-text query (matched against title, description, category)
            filters: Category, location and price filters
            limit: Maximum number of listings, boosted listings first

        Returns:
            Matching listings
        """
        pass

    @abstractmethod
    async def get_listing_by_id(self, listing_id: str) -> Optional[Listing]:
        """Get listing or None if it does not exist."""
        pass

    @abstractmethod
    async def increment_view_count(self, listing_id: str) -> None:
        """Count one more view of a listing."""
        pass

    @abstractmethod
    async def get_seller_listings(self, seller: str, limit: int = 10) -> list[Listing]:
        """Listings owned by a seller (chat user id or phone), newest first."""
        pass

    # Groups

    @abstractmethod
    async def register_group(
        self,
        invite_code: str,
        name: str,
        category: str,
        admin_id: str,
    ) -> Group:
        """Register (or update) a group by invite code."""
        pass

    @abstractmethod
    async def is_group_registered(self, invite_code: str) -> bool:
        """Check whether an invite code is already registered."""
        pass

    # Ratings and escrow

    @abstractmethod
    async def submit_rating(self, listing_id: str, rater_id: str, stars: int) -> None:
        """Store a rating for the seller of a listing."""
        pass

    @abstractmethod
    async def record_transaction(
        self,
        reference: str,
        listing_id: str,
        buyer_id: str,
        amount: float,
        escrow_fee: float,
        currency: str,
        provider_reference: Optional[str] = None,
    ) -> Transaction:
        """Record a pending escrow purchase; an open one for the same buyer is reused."""
        pass

    @abstractmethod
    async def get_transaction(self, reference: str) -> Optional[Transaction]:
        """Get the most recent transaction with this reference."""
        pass

    @abstractmethod
    async def set_transaction_status(
        self, reference: str, status: PaymentStatus, provider_reference: Optional[str] = None
    ) -> Optional[Transaction]:
        """Update a transaction after a provider status update."""
        pass

    # Subscriptions

    @abstractmethod
    async def list_subscription_plans(self) -> list[SubscriptionPlan]:
        """Active plans ordered by price."""
        pass

    @abstractmethod
    async def create_subscription(
        self, user_id: str, plan: SubscriptionPlan, payment_reference: str
    ) -> Subscription:
        """Create a pending subscription."""
        pass

    @abstractmethod
    async def get_active_subscription(self, user_id: str) -> Optional[Subscription]:
        """Active, not expired subscription of a user."""
        pass

    @abstractmethod
    async def set_subscription_status(
        self, payment_reference: str, status: PaymentStatus
    ) -> Optional[Subscription]:
        """Settle a pending subscription; None when there is no pending one."""
        pass

    # Boosts

    @abstractmethod
    async def list_boost_packages(self) -> list[BoostPackage]:
        """Active boost packages ordered by price."""
        pass

    @abstractmethod
    async def create_boost(
        self, listing_id: str, package: BoostPackage, payment_reference: str
    ) -> ListingBoost:
        """Create a pending boost."""
        pass

    @abstractmethod
    async def get_active_boost(self, listing_id: str) -> Optional[ListingBoost]:
        """Running boost of a listing."""
        pass

    @abstractmethod
    async def set_boost_status(
        self, payment_reference: str, status: PaymentStatus
    ) -> Optional[ListingBoost]:
        """Settle a pending boost; None when there is no pending one."""
        pass
