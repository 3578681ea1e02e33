"""Seed the database with QuickCourt test data.

Run with: python -m scripts.seed
Creates an admin, a facility owner and a player, plus sample facilities in
each moderation state. Facilities go through the same moderation service the
API uses, so the seeded rows satisfy every model invariant.
"""

import asyncio
from datetime import time
from decimal import Decimal

from sqlalchemy import select

from app.core.auth import hash_password
from app.core.database import async_session_factory, engine
from app.models import Base, User, UserRole
from app.services import moderation, reviews
from app.services.operating_hours import ClosedDay, OpenDay, WeeklyHours
from app.services.permissions import Actor

WEEKEND_ONLY = WeeklyHours(
    saturday=OpenDay(open=time(7, 0), close=time(21, 0)),
    sunday=OpenDay(open=time(7, 0), close=time(21, 0)),
)

# "listed": approved and visible; "approved": approved but unlisted;
# "pending": awaiting review; "rejected": turned down with a reason.
FACILITIES = [
    {
        "state": "listed",
        "name": "Smash Arena",
        "description": "Six wooden badminton courts with AC.",
        "address": "12 MG Road",
        "city": "Bengaluru",
        "latitude": Decimal("12.9752"),
        "longitude": Decimal("77.6069"),
        "sport_types": ["badminton"],
        "amenities": ["parking", "showers", "racket rental"],
        "operating_hours": WeeklyHours.every_day(time(6, 0), time(22, 0)),
        "price_per_hour_paise": 80000,
    },
    {
        "state": "listed",
        "name": "Baseline Tennis Club",
        "description": "Two synthetic hard courts, floodlit.",
        "address": "44 Koregaon Park",
        "city": "Pune",
        "latitude": Decimal("18.5362"),
        "longitude": Decimal("73.8940"),
        "sport_types": ["tennis"],
        "amenities": ["floodlights", "cafe"],
        "operating_hours": WeeklyHours.every_day(time(6, 0), time(23, 0)),
        "price_per_hour_paise": 120000,
    },
    {
        "state": "approved",
        "name": "Weekend Hoops",
        "description": "Outdoor basketball court, weekends only.",
        "address": "3 Marine Drive",
        "city": "Mumbai",
        "sport_types": ["basketball"],
        "operating_hours": WEEKEND_ONLY,
        "price_per_hour_paise": 50000,
    },
    {
        "state": "pending",
        "name": "Spin Zone",
        "description": "Table tennis hall with eight tables.",
        "address": "9 Park Street",
        "city": "Kolkata",
        "sport_types": ["table_tennis"],
        "operating_hours": WeeklyHours(
            monday=OpenDay(open=time(9, 0), close=time(21, 0)),
            tuesday=ClosedDay(),
            wednesday=OpenDay(open=time(9, 0), close=time(21, 0)),
        ),
        "price_per_hour_paise": 30000,
    },
    {
        "state": "rejected",
        "name": "Goal Post Turf",
        "address": "Unknown",
        "city": "Chennai",
        "sport_types": ["football"],
        "operating_hours": WeeklyHours.every_day(time(5, 0), time(23, 0)),
        "price_per_hour_paise": 150000,
    },
]

USERS = [
    ("admin@quickcourt.in", "admin1234", "Test", "Admin", UserRole.ADMIN),
    ("owner@example.com", "owner1234", "Test", "Owner", UserRole.FACILITY_OWNER),
    ("player@example.com", "player1234", "Test", "Player", UserRole.USER),
]


async def seed():
    # Create tables (in dev; production uses Alembic migrations)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session_factory() as db:
        # Check if already seeded
        result = await db.execute(select(User).where(User.email == USERS[0][0]))
        if result.scalar_one_or_none():
            print("Database already seeded - skipping.")
            return

        accounts = {}
        for email, password, first_name, last_name, role in USERS:
            user = User(
                email=email,
                hashed_password=hash_password(password),
                first_name=first_name,
                last_name=last_name,
                role=role,
            )
            db.add(user)
            await db.flush()
            accounts[role] = Actor.of(user)

        admin = accounts[UserRole.ADMIN]
        owner = accounts[UserRole.FACILITY_OWNER]
        player = accounts[UserRole.USER]

        for data in FACILITIES:
            data = dict(data)
            state = data.pop("state")
            facility = await moderation.submit_facility(db, owner, **data)

            if state in ("listed", "approved"):
                await moderation.approve(db, admin, facility.id)
            if state == "listed":
                await moderation.toggle_visibility(db, owner, facility.id, True)
                await reviews.add_review(db, player, facility.id, 4, "Well kept courts.")
            if state == "rejected":
                await moderation.reject(db, admin, facility.id, "Address could not be verified.")

        await db.commit()

        print(f"Seeded {len(FACILITIES)} facilities")
        print(f"  {len(USERS)} test users:")
        for email, password, *_ in USERS:
            print(f"    {email} / {password}")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(seed())
