"""Shared fakes and fixtures."""

import os

# Settings require a bot token at import time
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "test-token")

import asyncio
from datetime import datetime, timedelta
from typing import Optional

import pytest

from marketbot.core.agent.models import ConversationSession
from marketbot.core.agent.orchestrator import Orchestrator
from marketbot.core.agent.responses import ResponseGenerator
from marketbot.core.commands import CommandRouter
from marketbot.core.errors import PaymentProviderError, StoreError
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
from marketbot.core.registration import RegistrationFlow, RegistrationSession
from marketbot.core.sessions import InMemorySessionStore, SessionManager
from marketbot.integrations.llm import BaseLLM, LLMResponse
from marketbot.integrations.payments import PaymentLink, PaymentProvider


def make_listing(listing_id: str = "1", title: str = "Samsung TV", price: float = 100000, **kwargs) -> Listing:
    defaults = dict(
        currency="FCFA",
        seller=Seller(name="Alice", phone="+237600000001", rating=4.5),
        location="Douala",
        category="electronics",
    )
    defaults.update(kwargs)
    return Listing(id=listing_id, title=title, price=price, **defaults)


class FakeStore(MarketplaceStore):
    """In-memory marketplace with call recording."""

    def __init__(self, listings: Optional[list[Listing]] = None):
        self.listings = {listing.id: listing for listing in listings or []}
        self.owners: dict[str, str] = {}
        self.groups: dict[str, Group] = {}
        self.ratings: list[tuple[str, str, int]] = []
        self.transactions: list[Transaction] = []
        self.plans = [
            SubscriptionPlan(id=1, name="Basic", price=1000, currency="FCFA", duration_days=30),
            SubscriptionPlan(id=2, name="Pro", price=2500, currency="FCFA", duration_days=30),
        ]
        self.packages = [
            BoostPackage(id=1, name="Quick Boost", price=500, currency="FCFA", duration_hours=24),
        ]
        self.subscriptions: list[Subscription] = []
        self.boosts: list[ListingBoost] = []
        self.searches: list[tuple[Optional[str], SearchFilters]] = []
        self.views: list[str] = []
        self.fail_search = False
        self.fail_register = False

    async def search_listings(self, query, filters, limit=5):
        if self.fail_search:
            raise StoreError("search down")
        self.searches.append((query, filters))
        return list(self.listings.values())[:limit]

    async def get_listing_by_id(self, listing_id):
        return self.listings.get(str(listing_id))

    async def increment_view_count(self, listing_id):
        self.views.append(listing_id)

    async def get_seller_listings(self, seller, limit=10):
        return [self.listings[i] for i, owner in self.owners.items() if owner == seller][:limit]

    async def register_group(self, invite_code, name, category, admin_id):
        if self.fail_register:
            raise StoreError("db down")
        group = Group(
            id=str(len(self.groups) + 1), invite_code=invite_code, name=name,
            category=category, admin_id=admin_id,
        )
        self.groups[invite_code] = group
        return group

    async def is_group_registered(self, invite_code):
        return invite_code in self.groups

    async def submit_rating(self, listing_id, rater_id, stars):
        self.ratings.append((listing_id, rater_id, stars))

    async def record_transaction(
        self, reference, listing_id, buyer_id, amount, escrow_fee, currency, provider_reference=None
    ):
        for transaction in self.transactions:
            if (transaction.reference == reference and transaction.buyer_id == buyer_id
                    and transaction.status is PaymentStatus.PENDING):
                transaction.provider_reference = transaction.provider_reference or provider_reference
                return transaction
        transaction = Transaction(
            id=len(self.transactions) + 1, reference=reference, listing_id=listing_id,
            buyer_id=buyer_id, amount=amount, escrow_fee=escrow_fee, currency=currency,
            status=PaymentStatus.PENDING, provider_reference=provider_reference,
        )
        self.transactions.append(transaction)
        return transaction

    async def get_transaction(self, reference):
        matches = [t for t in self.transactions if t.reference == reference]
        return matches[-1] if matches else None

    async def set_transaction_status(self, reference, status, provider_reference=None):
        for transaction in reversed(self.transactions):
            if transaction.reference == reference and transaction.status is PaymentStatus.PENDING:
                transaction.status = status
                transaction.provider_reference = provider_reference or transaction.provider_reference
                return transaction
        return None

    async def list_subscription_plans(self):
        return list(self.plans)

    async def create_subscription(self, user_id, plan, payment_reference):
        subscription = Subscription(
            id=len(self.subscriptions) + 1, user_id=user_id, plan_name=plan.name,
            end_date=datetime.utcnow() + timedelta(days=plan.duration_days),
            status=PaymentStatus.PENDING, payment_reference=payment_reference,
        )
        self.subscriptions.append(subscription)
        return subscription

    async def get_active_subscription(self, user_id):
        return next(
            (s for s in self.subscriptions if s.user_id == user_id and s.status is PaymentStatus.ACTIVE),
            None,
        )

    async def set_subscription_status(self, payment_reference, status):
        for subscription in self.subscriptions:
            if subscription.payment_reference == payment_reference and subscription.status is PaymentStatus.PENDING:
                subscription.status = status
                return subscription
        return None

    async def list_boost_packages(self):
        return list(self.packages)

    async def create_boost(self, listing_id, package, payment_reference):
        boost = ListingBoost(
            id=len(self.boosts) + 1, listing_id=listing_id, package_name=package.name,
            end_date=datetime.utcnow() + timedelta(hours=package.duration_hours),
            status=PaymentStatus.PENDING, payment_reference=payment_reference,
        )
        self.boosts.append(boost)
        return boost

    async def get_active_boost(self, listing_id):
        return next(
            (b for b in self.boosts if b.listing_id == listing_id and b.status is PaymentStatus.ACTIVE),
            None,
        )

    async def set_boost_status(self, payment_reference, status):
        for boost in self.boosts:
            if boost.payment_reference == payment_reference and boost.status is PaymentStatus.PENDING:
                boost.status = status
                return boost
        return None


class FakePayments(PaymentProvider):
    """Records requests, returns predictable links."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.checkouts: list[dict] = []
        self.direct: list[dict] = []

    async def create_checkout_payment(self, amount, reference, user_id=None, message=None):
        if self.fail:
            raise PaymentProviderError("provider down")
        self.checkouts.append(
            {"amount": amount, "reference": reference, "user_id": user_id, "message": message}
        )
        return PaymentLink(link=f"https://pay.test/{len(self.checkouts)}", trans_id=f"T{len(self.checkouts)}")

    async def direct_pay(self, amount, phone, reference, name=None, email=None, message=None):
        if self.fail:
            raise PaymentProviderError("provider down")
        self.direct.append({"amount": amount, "phone": phone, "reference": reference})
        return "D1"

    @property
    def name(self) -> str:
        return "fake"


class FakeLLM(BaseLLM):
    """Returns a canned answer, optionally after a delay or with an error."""

    def __init__(self, content: str = "", delay: float = 0, error: Optional[Exception] = None):
        self.content = content
        self.delay = delay
        self.error = error
        self.calls = 0

    async def chat(self, messages, temperature=0.3, max_tokens=1024):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return LLMResponse(content=self.content)

    @property
    def name(self) -> str:
        return "fake-llm"


def conversation_manager(store=None, **kwargs) -> SessionManager:
    return SessionManager(
        store if store is not None else InMemorySessionStore(),
        factory=ConversationSession,
        loader=ConversationSession.from_dict,
        **kwargs,
    )


def registration_manager(store=None, **kwargs) -> SessionManager:
    return SessionManager(
        store if store is not None else InMemorySessionStore(),
        factory=RegistrationSession,
        loader=RegistrationSession.from_dict,
        **kwargs,
    )


@pytest.fixture
def listings():
    return [
        make_listing("11", "Samsung TV", 100000),
        make_listing("12", "LG Television 43 inch", 45000, location="Yaounde"),
        make_listing("13", "Sony Bravia", 250000),
    ]


@pytest.fixture
def store(listings):
    return FakeStore(listings)


@pytest.fixture
def payments():
    return FakePayments()


@pytest.fixture
def orchestrator(store, payments):
    return Orchestrator(
        sessions=conversation_manager(),
        generator=ResponseGenerator(store, payments),
        commands=CommandRouter(store, payments),
    )


@pytest.fixture
def registration(store):
    return RegistrationFlow(store, registration_manager())
