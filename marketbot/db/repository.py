"""
SQLAlchemy implementation of the marketplace store.
"""

import logging
import re
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload

from marketbot.core.errors import StoreError
from marketbot.core.marketplace import (
    BoostPackage,
    Group,
    Listing,
    ListingBoost,
    MarketplaceStore,
    PaymentStatus,
    SearchFilters,
    Seller,
    Subscription,
    SubscriptionPlan,
    Transaction,
)
from marketbot.db import models
from marketbot.db.sqlite import Database, db as default_db

logger = logging.getLogger(__name__)

# Words too generic to narrow a search
STOP_WORDS = {"the", "and", "for", "with", "any", "some", "cheap", "new", "used"}


def _search_terms(query: Optional[str]) -> list[str]:
    """Words of a query, plural 's' dropped so 'TVs' matches 'TV'."""
    if not query:
        return []
    terms = []
    for word in re.findall(r"[\wÀ-ÿ]+", query.lower()):
        if len(word) < 2 or word in STOP_WORDS:
            continue
        if len(word) > 2 and word.endswith("s") and not word.endswith("ss"):
            word = word[:-1]
        terms.append(word)
    return terms


def _parse_id(value: str) -> Optional[int]:
    value = str(value).strip()
    return int(value) if value.isdigit() else None


def _listing(row: models.Listing) -> Listing:
    now = datetime.utcnow()
    return Listing(
        id=str(row.id),
        title=row.title,
        price=row.price,
        currency=row.currency,
        seller=Seller(name=row.seller.name, phone=row.seller.phone, rating=row.seller.rating_avg),
        description=row.description or "",
        location=row.location,
        category=row.category,
        is_boosted=bool(row.is_boosted and row.boost_expires_at and row.boost_expires_at > now),
        view_count=row.view_count,
    )


def _plan(row: models.SubscriptionPlan) -> SubscriptionPlan:
    return SubscriptionPlan(
        id=row.id,
        name=row.name,
        price=row.price,
        currency=row.currency,
        duration_days=row.duration_days,
        features=row.features or {},
    )


def _package(row: models.BoostPackage) -> BoostPackage:
    return BoostPackage(
        id=row.id,
        name=row.name,
        price=row.price,
        currency=row.currency,
        duration_hours=row.duration_hours,
        priority_level=row.priority_level,
        description=row.description or "",
    )


def _subscription(row: models.UserSubscription) -> Subscription:
    return Subscription(
        id=row.id,
        user_id=row.user_id,
        plan_name=row.plan.name,
        end_date=row.end_date,
        status=PaymentStatus(row.status),
        payment_reference=row.payment_reference,
    )


def _boost(row: models.ListingBoost) -> ListingBoost:
    return ListingBoost(
        id=row.id,
        listing_id=str(row.listing_id),
        package_name=row.package.name,
        end_date=row.end_date,
        status=PaymentStatus(row.status),
        payment_reference=row.payment_reference,
    )


def _transaction(row: models.Transaction) -> Transaction:
    return Transaction(
        id=row.id,
        reference=row.reference,
        listing_id=str(row.listing_id),
        buyer_id=row.buyer_id,
        amount=row.amount,
        escrow_fee=row.escrow_fee,
        currency=row.currency,
        status=PaymentStatus(row.status),
        provider_reference=row.provider_reference,
    )


class SqlMarketplaceStore(MarketplaceStore):
    """Marketplace store backed by the application database."""

    def __init__(self, database: Optional[Database] = None):
        self.db = database or default_db

    def _listing_query(self):
        return select(models.Listing).options(selectinload(models.Listing.seller))

    # Listings

    async def search_listings(
        self,
        query: Optional[str],
        filters: SearchFilters,
        limit: int = 5,
    ) -> list[Listing]:
        now = datetime.utcnow()
        stmt = self._listing_query().where(models.Listing.is_active.is_(True))

        terms = _search_terms(query)
        if terms:
            stmt = stmt.where(or_(*(
                or_(
                    models.Listing.title.ilike(f"%{term}%"),
                    models.Listing.description.ilike(f"%{term}%"),
                    models.Listing.category.ilike(f"%{term}%"),
                )
                for term in terms
            )))

        if filters.category:
            stmt = stmt.where(models.Listing.category.ilike(f"%{filters.category}%"))
        if filters.location:
            stmt = stmt.where(models.Listing.location.ilike(f"%{filters.location}%"))
        if filters.min_price is not None:
            stmt = stmt.where(models.Listing.price >= filters.min_price)
        if filters.max_price is not None:
            stmt = stmt.where(models.Listing.price <= filters.max_price)
        if filters.exact_price is not None:
            stmt = stmt.where(models.Listing.price == filters.exact_price)

        boosted = and_(models.Listing.is_boosted.is_(True), models.Listing.boost_expires_at > now)
        stmt = stmt.order_by(
            boosted.desc(),
            models.Listing.boost_priority.desc(),
            models.Listing.created_at.desc(),
        ).limit(limit)

        try:
            async with self.db.session() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as e:
            raise StoreError("Listing search failed") from e

        logger.info(f"Search query={query!r} filters={filters} -> {len(rows)} listings")
        return [_listing(row) for row in rows]

    async def get_listing_by_id(self, listing_id: str) -> Optional[Listing]:
        pk = _parse_id(listing_id)
        if pk is None:
            return None
        try:
            async with self.db.session() as session:
                row = (await session.execute(
                    self._listing_query().where(models.Listing.id == pk)
                )).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to load listing {listing_id}") from e

        if row is None or not row.is_active:
            return None
        return _listing(row)

    async def increment_view_count(self, listing_id: str) -> None:
        pk = _parse_id(listing_id)
        if pk is None:
            return
        try:
            async with self.db.session() as session:
                row = await session.get(models.Listing, pk)
                if row is not None:
                    row.view_count = (row.view_count or 0) + 1
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to count view of listing {listing_id}") from e

    async def get_seller_listings(self, seller: str, limit: int = 10) -> list[Listing]:
        stmt = (
            self._listing_query()
            .join(models.Listing.seller)
            .where(
                or_(models.Seller.user_id == seller, models.Seller.phone == seller),
                models.Listing.is_active.is_(True),
            )
            .order_by(models.Listing.created_at.desc())
            .limit(limit)
        )
        try:
            async with self.db.session() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as e:
            raise StoreError("Failed to load seller listings") from e
        return [_listing(row) for row in rows]

    # Groups

    async def register_group(
        self,
        invite_code: str,
        name: str,
        category: str,
        admin_id: str,
    ) -> Group:
        try:
            async with self.db.session() as session:
                row = (await session.execute(
                    select(models.Group).where(models.Group.invite_code == invite_code)
                )).scalar_one_or_none()
                if row is None:
                    row = models.Group(invite_code=invite_code)
                    session.add(row)
                row.name = name
                row.category = category
                row.admin_id = admin_id
                row.is_active = True
                await session.flush()
                group = Group(
                    id=str(row.id),
                    invite_code=row.invite_code,
                    name=row.name,
                    category=row.category,
                    admin_id=row.admin_id,
                    created_at=row.created_at,
                )
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to register group {invite_code}") from e

        logger.info(f"Group registered: {name} ({category}) by {admin_id}")
        return group

    async def is_group_registered(self, invite_code: str) -> bool:
        try:
            async with self.db.session() as session:
                count = (await session.execute(
                    select(func.count(models.Group.id)).where(
                        models.Group.invite_code == invite_code,
                        models.Group.is_active.is_(True),
                    )
                )).scalar_one()
        except SQLAlchemyError as e:
            raise StoreError("Failed to check group registration") from e
        return count > 0

    # Ratings and escrow

    async def submit_rating(self, listing_id: str, rater_id: str, stars: int) -> None:
        pk = _parse_id(listing_id)
        if pk is None:
            raise StoreError(f"Invalid listing id {listing_id!r}")
        try:
            async with self.db.session() as session:
                listing = await session.get(models.Listing, pk)
                if listing is None:
                    raise StoreError(f"Listing {listing_id} not found")

                rating = (await session.execute(
                    select(models.Rating).where(
                        models.Rating.listing_id == pk, models.Rating.rater_id == rater_id
                    )
                )).scalar_one_or_none()
                if rating is None:
                    session.add(models.Rating(
                        listing_id=pk, seller_id=listing.seller_id, rater_id=rater_id, stars=stars
                    ))
                else:
                    rating.stars = stars
                await session.flush()

                avg, count = (await session.execute(
                    select(func.avg(models.Rating.stars), func.count(models.Rating.id))
                    .where(models.Rating.seller_id == listing.seller_id)
                )).one()
                seller = await session.get(models.Seller, listing.seller_id)
                seller.rating_avg = round(float(avg), 2) if avg is not None else None
                seller.rating_count = count
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to store rating for listing {listing_id}") from e

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
        pk = _parse_id(listing_id)
        if pk is None:
            raise StoreError(f"Invalid listing id {listing_id!r}")
        try:
            async with self.db.session() as session:
                # Re-rendering the checkout of an open order keeps one record
                row = (await session.execute(
                    select(models.Transaction).where(
                        models.Transaction.reference == reference,
                        models.Transaction.buyer_id == buyer_id,
                        models.Transaction.status == PaymentStatus.PENDING.value,
                    )
                )).scalar_one_or_none()
                if row is None:
                    row = models.Transaction(
                        reference=reference,
                        listing_id=pk,
                        buyer_id=buyer_id,
                        amount=amount,
                        escrow_fee=escrow_fee,
                        currency=currency,
                        status=PaymentStatus.PENDING.value,
                        provider_reference=provider_reference,
                    )
                    session.add(row)
                    await session.flush()
                    logger.info(f"Escrow transaction {reference} recorded for buyer {buyer_id}")
                elif provider_reference and not row.provider_reference:
                    row.provider_reference = provider_reference
                    await session.flush()
                return _transaction(row)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to record transaction {reference}") from e

    async def get_transaction(self, reference: str) -> Optional[Transaction]:
        try:
            async with self.db.session() as session:
                row = (await session.execute(
                    select(models.Transaction)
                    .where(models.Transaction.reference == reference)
                    .order_by(models.Transaction.created_at.desc(), models.Transaction.id.desc())
                    .limit(1)
                )).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to load transaction {reference}") from e
        return _transaction(row) if row else None

    async def set_transaction_status(
        self, reference: str, status: PaymentStatus, provider_reference: Optional[str] = None
    ) -> Optional[Transaction]:
        try:
            async with self.db.session() as session:
                row = (await session.execute(
                    select(models.Transaction)
                    .where(
                        models.Transaction.reference == reference,
                        models.Transaction.status == PaymentStatus.PENDING.value,
                    )
                    .order_by(models.Transaction.created_at.desc(), models.Transaction.id.desc())
                    .limit(1)
                )).scalar_one_or_none()
                if row is None:
                    return None
                row.status = status.value
                if provider_reference:
                    row.provider_reference = provider_reference
                await session.flush()
                return _transaction(row)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to update transaction {reference}") from e

    # Subscriptions

    async def list_subscription_plans(self) -> list[SubscriptionPlan]:
        try:
            async with self.db.session() as session:
                rows = (await session.execute(
                    select(models.SubscriptionPlan)
                    .where(models.SubscriptionPlan.is_active.is_(True))
                    .order_by(models.SubscriptionPlan.price)
                )).scalars().all()
        except SQLAlchemyError as e:
            raise StoreError("Failed to load subscription plans") from e
        return [_plan(row) for row in rows]

    async def create_subscription(
        self, user_id: str, plan: SubscriptionPlan, payment_reference: str
    ) -> Subscription:
        now = datetime.utcnow()
        try:
            async with self.db.session() as session:
                row = models.UserSubscription(
                    user_id=user_id,
                    plan_id=plan.id,
                    start_date=now,
                    end_date=now + timedelta(days=plan.duration_days),
                    status=PaymentStatus.PENDING.value,
                    payment_reference=payment_reference,
                )
                session.add(row)
                await session.flush()
                return Subscription(
                    id=row.id,
                    user_id=user_id,
                    plan_name=plan.name,
                    end_date=row.end_date,
                    status=PaymentStatus.PENDING,
                    payment_reference=payment_reference,
                )
        except SQLAlchemyError as e:
            raise StoreError("Failed to create subscription") from e

    async def get_active_subscription(self, user_id: str) -> Optional[Subscription]:
        try:
            async with self.db.session() as session:
                row = (await session.execute(
                    select(models.UserSubscription)
                    .options(selectinload(models.UserSubscription.plan))
                    .where(
                        models.UserSubscription.user_id == user_id,
                        models.UserSubscription.status == PaymentStatus.ACTIVE.value,
                        models.UserSubscription.end_date > datetime.utcnow(),
                    )
                    .order_by(models.UserSubscription.end_date.desc())
                    .limit(1)
                )).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StoreError("Failed to load subscription") from e
        return _subscription(row) if row else None

    async def set_subscription_status(
        self, payment_reference: str, status: PaymentStatus
    ) -> Optional[Subscription]:
        try:
            async with self.db.session() as session:
                row = (await session.execute(
                    select(models.UserSubscription)
                    .options(selectinload(models.UserSubscription.plan))
                    .where(
                        models.UserSubscription.payment_reference == payment_reference,
                        models.UserSubscription.status == PaymentStatus.PENDING.value,
                    )
                )).scalar_one_or_none()
                if row is None:
                    return None
                row.status = status.value
                if status is PaymentStatus.ACTIVE:
                    # Paid time starts when the payment lands
                    row.start_date = datetime.utcnow()
                    row.end_date = row.start_date + timedelta(days=row.plan.duration_days)
                await session.flush()
                return _subscription(row)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to update subscription {payment_reference}") from e

    # Boosts

    async def list_boost_packages(self) -> list[BoostPackage]:
        try:
            async with self.db.session() as session:
                rows = (await session.execute(
                    select(models.BoostPackage)
                    .where(models.BoostPackage.is_active.is_(True))
                    .order_by(models.BoostPackage.price)
                )).scalars().all()
        except SQLAlchemyError as e:
            raise StoreError("Failed to load boost packages") from e
        return [_package(row) for row in rows]

    async def create_boost(
        self, listing_id: str, package: BoostPackage, payment_reference: str
    ) -> ListingBoost:
        pk = _parse_id(listing_id)
        if pk is None:
            raise StoreError(f"Invalid listing id {listing_id!r}")
        now = datetime.utcnow()
        try:
            async with self.db.session() as session:
                row = models.ListingBoost(
                    listing_id=pk,
                    package_id=package.id,
                    start_date=now,
                    end_date=now + timedelta(hours=package.duration_hours),
                    status=PaymentStatus.PENDING.value,
                    payment_reference=payment_reference,
                )
                session.add(row)
                await session.flush()
                return ListingBoost(
                    id=row.id,
                    listing_id=str(pk),
                    package_name=package.name,
                    end_date=row.end_date,
                    status=PaymentStatus.PENDING,
                    payment_reference=payment_reference,
                )
        except SQLAlchemyError as e:
            raise StoreError("Failed to create boost") from e

    async def get_active_boost(self, listing_id: str) -> Optional[ListingBoost]:
        pk = _parse_id(listing_id)
        if pk is None:
            return None
        try:
            async with self.db.session() as session:
                row = (await session.execute(
                    select(models.ListingBoost)
                    .options(selectinload(models.ListingBoost.package))
                    .where(
                        models.ListingBoost.listing_id == pk,
                        models.ListingBoost.status == PaymentStatus.ACTIVE.value,
                        models.ListingBoost.end_date > datetime.utcnow(),
                    )
                    .order_by(models.ListingBoost.end_date.desc())
                    .limit(1)
                )).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StoreError("Failed to load boost") from e
        return _boost(row) if row else None

    async def set_boost_status(
        self, payment_reference: str, status: PaymentStatus
    ) -> Optional[ListingBoost]:
        try:
            async with self.db.session() as session:
                row = (await session.execute(
                    select(models.ListingBoost)
                    .options(selectinload(models.ListingBoost.package))
                    .where(
                        models.ListingBoost.payment_reference == payment_reference,
                        models.ListingBoost.status == PaymentStatus.PENDING.value,
                    )
                )).scalar_one_or_none()
                if row is None:
                    return None
                row.status = status.value
                if status is PaymentStatus.ACTIVE:
                    row.start_date = datetime.utcnow()
                    row.end_date = row.start_date + timedelta(hours=row.package.duration_hours)
                    listing = await session.get(models.Listing, row.listing_id)
                    if listing is not None:
                        listing.is_boosted = True
                        listing.boost_priority = row.package.priority_level
                        listing.boost_expires_at = row.end_date
                await session.flush()
                return _boost(row)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to update boost {payment_reference}") from e
