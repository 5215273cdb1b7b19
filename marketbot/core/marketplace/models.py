"""
Read-model types exposed by the marketplace store.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class PaymentStatus(Enum):
    """Status of anything paid through the provider."""
    PENDING = "pending"          # Waiting for webhook
    ACTIVE = "active"            # Subscription / boost running
    COMPLETED = "completed"      # Escrow released to seller
    FAILED = "failed"            # Failed or expired at provider


@dataclass
class Seller:
    """Seller attached to a listing."""
    name: str
    phone: Optional[str] = None
    rating: Optional[float] = None


@dataclass
class Listing:
    """Single marketplace listing."""
    id: str
    title: str
    price: float
    currency: str
    seller: Seller
    description: str = ""
    location: Optional[str] = None
    category: Optional[str] = None
    is_boosted: bool = False
    view_count: int = 0

    def short_title(self, width: int = 15) -> str:
        """Title cut for button labels."""
        if len(self.title) <= width:
            return self.title
        return f"{self.title[:width]}..."


@dataclass
class SearchFilters:
    """Filters accepted by listing search."""
    category: Optional[str] = None
    location: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    exact_price: Optional[float] = None


@dataclass
class Group:
    """Chat group registered for marketplace monitoring."""
    id: str
    invite_code: str
    name: str
    category: str
    admin_id: str
    created_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class SubscriptionPlan:
    """Premium plan sold through `!subscription`."""
    id: int
    name: str
    price: float
    currency: str
    duration_days: int
    features: dict = field(default_factory=dict)


@dataclass
class Subscription:
    """Subscription bought by a user."""
    id: int
    user_id: str
    plan_name: str
    end_date: datetime
    status: PaymentStatus
    payment_reference: Optional[str] = None

    @property
    def days_remaining(self) -> int:
        delta = self.end_date - datetime.utcnow()
        return max(0, delta.days + (1 if delta.seconds else 0))


@dataclass
class BoostPackage:
    """Paid ranking priority package."""
    id: int
    name: str
    price: float
    currency: str
    duration_hours: int
    priority_level: int = 1
    description: str = ""

    @property
    def duration_days(self) -> float:
        return self.duration_hours / 24


@dataclass
class ListingBoost:
    """Boost applied to a listing."""
    id: int
    listing_id: str
    package_name: str
    end_date: datetime
    status: PaymentStatus
    payment_reference: Optional[str] = None

    @property
    def hours_remaining(self) -> int:
        seconds = (self.end_date - datetime.utcnow()).total_seconds()
        return max(0, int(-(-seconds // 3600)))


@dataclass
class Transaction:
    """Escrow purchase of a listing."""
    id: int
    reference: str
    listing_id: str
    buyer_id: str
    amount: float
    escrow_fee: float
    currency: str
    status: PaymentStatus
    provider_reference: Optional[str] = None

    @property
    def total(self) -> float:
        return self.amount + self.escrow_fee
