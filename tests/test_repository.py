"""SQL marketplace store against a temporary SQLite file."""

from datetime import datetime, timedelta

import pytest

from marketbot.core.errors import StoreError
from marketbot.core.marketplace import PaymentStatus, SearchFilters
from marketbot.core.sessions import SqlSessionStore
from marketbot.db import models
from marketbot.db.repository import SqlMarketplaceStore, _search_terms
from marketbot.db.sqlite import Database


@pytest.fixture
def database(tmp_path):
    return Database(url=f"sqlite+aiosqlite:///{tmp_path / 'market.db'}", echo=False)


async def seed(database: Database) -> dict[str, int]:
    await database.init()
    async with database.session() as session:
        alice = models.Seller(name="Alice", phone="+237600000001", user_id="alice")
        bob = models.Seller(name="Bob", phone="+237600000002")
        tv = models.Listing(seller=alice, title="Samsung TV 43", price=95000, location="Douala", category="electronics")
        tv_cheap = models.Listing(seller=bob, title="Old TV", price=30000, location="Douala", category="electronics")
        sofa = models.Listing(seller=bob, title="Blue sofa", price=80000, location="Yaounde", category="furniture")
        hidden = models.Listing(seller=bob, title="Sold TV", price=10000, location="Douala", is_active=False)
        plan = models.SubscriptionPlan(name="Basic", price=1000, duration_days=30)
        package = models.BoostPackage(name="Quick Boost", price=500, duration_hours=24, priority_level=2)
        session.add_all([alice, bob, tv, tv_cheap, sofa, hidden, plan, package])
        await session.flush()
        return {"tv": tv.id, "tv_cheap": tv_cheap.id, "sofa": sofa.id, "hidden": hidden.id}


@pytest.mark.asyncio
async def test_register_then_is_registered(database):
    await database.init()
    store = SqlMarketplaceStore(database)

    assert not await store.is_group_registered("ABC123")
    group = await store.register_group("ABC123", "My Group", "electronics", "admin")

    assert group.invite_code == "ABC123"
    assert await store.is_group_registered("ABC123")
    await database.close()


@pytest.mark.asyncio
async def test_search_with_plural_query_and_filters(database):
    ids = await seed(database)
    store = SqlMarketplaceStore(database)

    results = await store.search_listings("TVs", SearchFilters(location="douala", max_price=50000))

    assert [listing.id for listing in results] == [str(ids["tv_cheap"])]
    await database.close()


@pytest.mark.asyncio
async def test_search_skips_inactive_listings(database):
    ids = await seed(database)
    store = SqlMarketplaceStore(database)

    results = await store.search_listings("tv", SearchFilters())

    assert str(ids["hidden"]) not in {listing.id for listing in results}
    assert await store.get_listing_by_id(str(ids["hidden"])) is None
    await database.close()


@pytest.mark.asyncio
async def test_active_boost_ranks_first(database):
    ids = await seed(database)
    store = SqlMarketplaceStore(database)
    [package] = await store.list_boost_packages()
    await store.create_boost(str(ids["tv_cheap"]), package, "boost_bob_1_1")

    boost = await store.set_boost_status("boost_bob_1_1", PaymentStatus.ACTIVE)
    results = await store.search_listings("tv", SearchFilters())

    assert boost.status is PaymentStatus.ACTIVE
    assert results[0].id == str(ids["tv_cheap"])
    assert results[0].is_boosted
    assert (await store.get_active_boost(str(ids["tv_cheap"]))).package_name == "Quick Boost"
    await database.close()


@pytest.mark.asyncio
async def test_seller_listings_by_user_id_or_phone(database):
    ids = await seed(database)
    store = SqlMarketplaceStore(database)

    by_user = await store.get_seller_listings("alice")
    by_phone = await store.get_seller_listings("+237600000002")

    assert [listing.id for listing in by_user] == [str(ids["tv"])]
    assert {listing.id for listing in by_phone} == {str(ids["tv_cheap"]), str(ids["sofa"])}
    await database.close()


@pytest.mark.asyncio
async def test_rating_updates_seller_average(database):
    ids = await seed(database)
    store = SqlMarketplaceStore(database)
    sofa = str(ids["sofa"])

    await store.submit_rating(sofa, "u1", 5)
    await store.submit_rating(sofa, "u2", 2)
    await store.submit_rating(sofa, "u2", 4)

    listing = await store.get_listing_by_id(sofa)
    assert listing.seller.rating == 4.5
    await database.close()


@pytest.mark.asyncio
async def test_rating_unknown_listing(database):
    await seed(database)

    with pytest.raises(StoreError):
        await SqlMarketplaceStore(database).submit_rating("999", "u1", 3)
    await database.close()


@pytest.mark.asyncio
async def test_transaction_lifecycle(database):
    ids = await seed(database)
    store = SqlMarketplaceStore(database)
    tv = str(ids["tv"])

    first = await store.record_transaction("MP-1", tv, "buyer", 95000, 4750, "FCFA")
    again = await store.record_transaction("MP-1", tv, "buyer", 95000, 4750, "FCFA")
    assert first.id == again.id

    done = await store.set_transaction_status("MP-1", PaymentStatus.COMPLETED, "T9")
    assert done.status is PaymentStatus.COMPLETED
    assert done.provider_reference == "T9"
    assert await store.set_transaction_status("MP-1", PaymentStatus.FAILED) is None
    assert (await store.get_transaction("MP-1")).status is PaymentStatus.COMPLETED
    await database.close()


@pytest.mark.asyncio
async def test_subscription_activation(database):
    await seed(database)
    store = SqlMarketplaceStore(database)
    [plan] = await store.list_subscription_plans()

    await store.create_subscription("u1", plan, "sub_u1_1_1")
    assert await store.get_active_subscription("u1") is None

    await store.set_subscription_status("sub_u1_1_1", PaymentStatus.ACTIVE)
    active = await store.get_active_subscription("u1")

    assert active.plan_name == "Basic"
    assert active.days_remaining == 30
    await database.close()


@pytest.mark.asyncio
async def test_sql_session_store(database):
    await database.init()
    conversations = SqlSessionStore(database, "conversation")
    registrations = SqlSessionStore(database, "registration")
    old = datetime.utcnow() - timedelta(hours=2)

    await conversations.set("u1", {"user_id": "u1", "state": "searching"}, old)
    await conversations.set("u1", {"user_id": "u1", "state": "checkout"}, old)
    await registrations.set("u1", {"user_id": "u1", "state": "idle"}, datetime.utcnow())

    assert (await conversations.get("u1"))["state"] == "checkout"
    assert await conversations.list_expired(datetime.utcnow() - timedelta(hours=1)) == ["u1"]
    assert await registrations.list_expired(datetime.utcnow() - timedelta(hours=1)) == []

    await conversations.delete("u1")
    assert await conversations.get("u1") is None
    assert await registrations.get("u1") is not None
    await database.close()


def test_search_terms():
    assert _search_terms("TVs and cheap phones") == ["tv", "phone"]
    assert _search_terms("glass") == ["glass"]
    assert _search_terms(None) == []


@pytest.mark.asyncio
async def test_checkout_record_keeps_provider_reference(database):
    ids = await seed(database)
    store = SqlMarketplaceStore(database)
    tv = str(ids["tv"])

    await store.record_transaction("MP-1_alice", tv, "alice", 95000, 4750, "FCFA")
    again = await store.record_transaction("MP-1_alice", tv, "alice", 95000, 4750, "FCFA", provider_reference="T5")
    other = await store.record_transaction("MP-1_bob", tv, "bob", 95000, 4750, "FCFA")

    assert again.provider_reference == "T5"
    assert other.id != again.id
    done = await store.set_transaction_status("MP-1_alice", PaymentStatus.COMPLETED)
    assert done.buyer_id == "alice"
    assert done.provider_reference == "T5"
    assert (await store.get_transaction("MP-1_bob")).status is PaymentStatus.PENDING
    await database.close()


@pytest.mark.asyncio
async def test_settled_subscription_ignores_replays(database):
    await seed(database)
    store = SqlMarketplaceStore(database)
    [plan] = await store.list_subscription_plans()
    await store.create_subscription("u1", plan, "sub_u1_1_2")

    first = await store.set_subscription_status("sub_u1_1_2", PaymentStatus.ACTIVE)

    assert await store.set_subscription_status("sub_u1_1_2", PaymentStatus.ACTIVE) is None
    assert await store.set_subscription_status("sub_u1_1_2", PaymentStatus.FAILED) is None
    active = await store.get_active_subscription("u1")
    assert active.end_date == first.end_date
    await database.close()


@pytest.mark.asyncio
async def test_settled_boost_ignores_late_failure(database):
    ids = await seed(database)
    store = SqlMarketplaceStore(database)
    [package] = await store.list_boost_packages()
    await store.create_boost(str(ids["tv_cheap"]), package, "boost_bob_2_1")
    await store.set_boost_status("boost_bob_2_1", PaymentStatus.ACTIVE)

    assert await store.set_boost_status("boost_bob_2_1", PaymentStatus.FAILED) is None

    assert (await store.get_active_boost(str(ids["tv_cheap"]))) is not None
    assert (await store.get_listing_by_id(str(ids["tv_cheap"]))).is_boosted
    await database.close()
