"""
SQLAlchemy models for the marketplace bot.
Listings, groups, escrow transactions, ratings, paid features and
persisted conversation sessions.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


# =============================================================================
# SELLERS & LISTINGS
# =============================================================================


class Seller(Base):
    """Seller posting listings in monitored groups."""

    __tablename__ = "sellers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(50), unique=True, nullable=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(64), unique=True, nullable=True)  # chat account

    # Reputation (denormalized for fast access)
    rating_avg: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    rating_count: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    # Relationships
    listings: Mapped[list["Listing"]] = relationship(back_populates="seller")

    def __repr__(self) -> str:
        return f"<Seller(id={self.id}, name='{self.name}')>"


class Listing(Base):
    """Product or service for sale."""

    __tablename__ = "listings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    seller_id: Mapped[int] = mapped_column(ForeignKey("sellers.id"), nullable=False)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    price: Mapped[float] = mapped_column(Float, nullable=False)
    currency: Mapped[str] = mapped_column(String(10), default="FCFA")
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    is_boosted: Mapped[bool] = mapped_column(Boolean, default=False)
    boost_priority: Mapped[int] = mapped_column(Integer, default=0)
    boost_expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    view_count: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # Relationships
    seller: Mapped["Seller"] = relationship(back_populates="listings")

    __table_args__ = (
        Index("ix_listings_active_price", "is_active", "price"),
        Index("ix_listings_category", "category"),
        Index("ix_listings_location", "location"),
    )

    def __repr__(self) -> str:
        return f"<Listing(id={self.id}, title='{self.title}', price={self.price})>"


class Group(Base):
    """Chat group registered for marketplace monitoring."""

    __tablename__ = "groups"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    invite_code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(100), default="general")
    admin_id: Mapped[str] = mapped_column(String(64), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<Group(id={self.id}, name='{self.name}')>"


# =============================================================================
# ESCROW & RATINGS
# =============================================================================


class Transaction(Base):
    """Escrow purchase of a listing."""

    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    reference: Mapped[str] = mapped_column(String(64), nullable=False)  # MP-<listing id>_<buyer id>
    listing_id: Mapped[int] = mapped_column(ForeignKey("listings.id"), nullable=False)
    buyer_id: Mapped[str] = mapped_column(String(64), nullable=False)

    amount: Mapped[float] = mapped_column(Float, nullable=False)
    escrow_fee: Mapped[float] = mapped_column(Float, default=0)
    currency: Mapped[str] = mapped_column(String(10), default="FCFA")

    status: Mapped[str] = mapped_column(String(20), default="pending")
    provider_reference: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    __table_args__ = (Index("ix_transactions_reference", "reference"),)

    def __repr__(self) -> str:
        return f"<Transaction(reference='{self.reference}', status='{self.status}')>"


class Rating(Base):
    """Buyer rating of a seller for one purchase."""

    __tablename__ = "ratings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    listing_id: Mapped[int] = mapped_column(ForeignKey("listings.id"), nullable=False)
    seller_id: Mapped[int] = mapped_column(ForeignKey("sellers.id"), nullable=False)
    rater_id: Mapped[str] = mapped_column(String(64), nullable=False)
    stars: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("listing_id", "rater_id", name="uq_rating_listing_rater"),
    )

    def __repr__(self) -> str:
        return f"<Rating(listing={self.listing_id}, stars={self.stars})>"


# =============================================================================
# PAID FEATURES
# =============================================================================


class SubscriptionPlan(Base):
    """Premium plan."""

    __tablename__ = "subscription_plans"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    currency: Mapped[str] = mapped_column(String(10), default="FCFA")
    duration_days: Mapped[int] = mapped_column(Integer, nullable=False)
    features: Mapped[dict] = mapped_column(JSON, default=dict)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    def __repr__(self) -> str:
        return f"<SubscriptionPlan(name='{self.name}', price={self.price})>"


class UserSubscription(Base):
    """Subscription bought by a user."""

    __tablename__ = "user_subscriptions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    plan_id: Mapped[int] = mapped_column(ForeignKey("subscription_plans.id"), nullable=False)

    start_date: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    end_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="pending")
    payment_reference: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    # Relationships
    plan: Mapped["SubscriptionPlan"] = relationship()

    __table_args__ = (Index("ix_user_subscriptions_user_status", "user_id", "status"),)


class BoostPackage(Base):
    """Paid ranking priority package."""

    __tablename__ = "boost_packages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    currency: Mapped[str] = mapped_column(String(10), default="FCFA")
    duration_hours: Mapped[int] = mapped_column(Integer, nullable=False)
    priority_level: Mapped[int] = mapped_column(Integer, default=1)
    description: Mapped[str] = mapped_column(Text, default="")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    def __repr__(self) -> str:
        return f"<BoostPackage(name='{self.name}', price={self.price})>"


class ListingBoost(Base):
    """Boost applied to a listing."""

    __tablename__ = "listing_boosts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    listing_id: Mapped[int] = mapped_column(ForeignKey("listings.id"), nullable=False)
    package_id: Mapped[int] = mapped_column(ForeignKey("boost_packages.id"), nullable=False)

    start_date: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    end_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="pending")
    payment_reference: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    # Relationships
    package: Mapped["BoostPackage"] = relationship()

    __table_args__ = (Index("ix_listing_boosts_listing_status", "listing_id", "status"),)


# =============================================================================
# CONVERSATION SESSIONS
# =============================================================================


class SessionRecord(Base):
    """Serialized per-user session (conversation or registration)."""

    __tablename__ = "conversation_sessions"

    kind: Mapped[str] = mapped_column(String(32), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    last_interaction: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (Index("ix_sessions_last_interaction", "kind", "last_interaction"),)

    def __repr__(self) -> str:
        return f"<SessionRecord(kind='{self.kind}', user_id='{self.user_id}')>"
