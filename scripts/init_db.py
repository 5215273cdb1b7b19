#!/usr/bin/env python3
"""
Script to initialize database tables and seed plans, boost packages and
a few sample listings.

Usage:
    python scripts/init_db.py [--no-samples]
"""

import asyncio
import sys
from pathlib import Path

from sqlalchemy import func, select

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from marketbot.db.models import BoostPackage, Listing, Seller, SubscriptionPlan
from marketbot.db.sqlite import db


PLANS = [
    {"name": "Basic", "price": 1000, "duration_days": 30,
     "features": {"saved_searches": 5, "price_alerts": True}},
    {"name": "Pro", "price": 2500, "duration_days": 30,
     "features": {"saved_searches": 20, "price_alerts": True, "priority_support": True}},
]

PACKAGES = [
    {"name": "Quick Boost", "price": 500, "duration_hours": 24, "priority_level": 1,
     "description": "Top of search results for a day"},
    {"name": "Weekly Boost", "price": 2000, "duration_hours": 168, "priority_level": 2,
     "description": "Top of search results for a week"},
]

SAMPLE_LISTINGS = [
    ("Samsung 43\" Smart TV", "Full HD, barely used", 95000, "Douala", "electronics"),
    ("iPhone 12 64GB", "Unlocked, with charger", 180000, "Yaounde", "electronics"),
    ("Leather shoes size 42", "Brand new, black", 15000, "Douala", "fashion"),
    ("Toyota Corolla 2010", "Automatic, 120,000 km", 4500000, "Bafoussam", "vehicles"),
]


async def seed() -> None:
    async with db.session() as session:
        if not (await session.execute(select(func.count(SubscriptionPlan.id)))).scalar():
            session.add_all(SubscriptionPlan(**plan) for plan in PLANS)
            print(f"  + {len(PLANS)} subscription plans")

        if not (await session.execute(select(func.count(BoostPackage.id)))).scalar():
            session.add_all(BoostPackage(**package) for package in PACKAGES)
            print(f"  + {len(PACKAGES)} boost packages")


async def seed_samples() -> None:
    async with db.session() as session:
        if (await session.execute(select(func.count(Listing.id)))).scalar():
            return
        seller = Seller(name="Demo Seller", phone="+237600000000")
        session.add(seller)
        for title, description, price, location, category in SAMPLE_LISTINGS:
            session.add(Listing(
                seller=seller,
                title=title,
                description=description,
                price=price,
                location=location,
                category=category,
            ))
        print(f"  + {len(SAMPLE_LISTINGS)} sample listings")


async def main() -> None:
    """Initialize the database."""
    print("Initializing database...")
    print("-" * 50)

    await db.init()
    print("✅ Tables created")

    await seed()
    if "--no-samples" not in sys.argv:
        await seed_samples()

    print("-" * 50)
    print("✅ Database initialized successfully!")

    await db.close()


if __name__ == "__main__":
    asyncio.run(main())
