"""Shared test fixtures.

Tests run against ``QC_DATABASE_URL`` when set (e.g. a throwaway Postgres),
otherwise against a local SQLite file. The schema is rebuilt for every test.
Stripe and SMTP are never contacted: the provider calls are patched at the
``app.services.stripe_service`` seam and ``send_email`` is mocked.
"""

import itertools
import os

os.environ.setdefault("QC_DATABASE_URL", "sqlite+aiosqlite:///./test_quickcourt.db")

from datetime import time  # noqa: E402
from types import SimpleNamespace  # noqa: E402
from unittest.mock import AsyncMock, patch  # noqa: E402

import pytest  # noqa: E402
import stripe  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from app.core.auth import create_access_token, hash_password  # noqa: E402
from app.core.database import async_session_factory, engine  # noqa: E402
from app.main import app  # noqa: E402
from app.models import ApprovalStatus, Base, Facility, User, UserRole  # noqa: E402
from app.services.operating_hours import WeeklyHours  # noqa: E402

PASSWORD = "testpass123"


@pytest.fixture(autouse=True)
async def _fresh_schema():
    """Dispose stale pool connections, then rebuild the schema.

    The global engine is created at import time. When pytest-asyncio creates a new
    event loop for tests, any existing pooled connections are bound to the old loop
    and will fail with 'Future attached to a different loop'. Disposing before each
    test forces fresh connections in the current loop.
    """
    await engine.dispose()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()


@pytest.fixture(autouse=True)
def mock_email():
    with patch("app.services.email.send_email", new_callable=AsyncMock) as mocked:
        yield mocked


@pytest.fixture
async def client():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


def make_intent(intent_id: str, status: str = "requires_payment_method", **extra) -> stripe.PaymentIntent:
    values = {"id": intent_id, "object": "payment_intent", "status": status, "client_secret": f"{intent_id}_secret"}
    values.update(extra)
    return stripe.PaymentIntent.construct_from(values, "sk_test")


@pytest.fixture
def stripe_mock():
    """Patch every provider call. Created intents are numbered pi_test_1, pi_test_2, ..."""
    counter = itertools.count(1)

    async def _create(amount_paise, customer_id, booking_id, idempotency_key):
        return make_intent(f"pi_test_{next(counter)}", amount=amount_paise)

    async def _retrieve(payment_intent_id):
        return make_intent(payment_intent_id)

    with (
        patch("app.services.stripe_service.ensure_stripe_customer", new_callable=AsyncMock, return_value="cus_test"),
        patch("app.services.stripe_service.create_payment_intent", new_callable=AsyncMock, side_effect=_create) as create,
        patch("app.services.stripe_service.retrieve_payment_intent", new_callable=AsyncMock, side_effect=_retrieve) as retrieve,
        patch("app.services.stripe_service.cancel_payment_intent", new_callable=AsyncMock) as cancel,
    ):
        yield SimpleNamespace(create=create, retrieve=retrieve, cancel=cancel)


async def create_user(email: str, role: UserRole = UserRole.USER, **fields) -> User:
    async with async_session_factory() as db:
        user = User(
            email=email,
            hashed_password=hash_password(PASSWORD),
            first_name=fields.pop("first_name", "Test"),
            last_name=fields.pop("last_name", role.value.replace("_", " ").title()),
            role=role,
            **fields,
        )
        db.add(user)
        await db.commit()
        return user


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(str(user.id), role=user.role.value)}"}


async def create_facility(
    owner: User,
    name: str = "Facility F",
    approval_status: ApprovalStatus = ApprovalStatus.APPROVED,
    is_active: bool = True,
    operating_hours: WeeklyHours | None = None,
    price_per_hour_paise: int = 80000,
) -> Facility:
    async with async_session_factory() as db:
        facility = Facility(
            owner_id=owner.id,
            name=name,
            address="1 Test Road",
            city="Bengaluru",
            sport_types=["badminton"],
            amenities=[],
            images=[],
            operating_hours=operating_hours or WeeklyHours.every_day(time(6, 0), time(22, 0)),
            price_per_hour_paise=price_per_hour_paise,
            approval_status=approval_status,
            is_active=is_active,
        )
        db.add(facility)
        await db.commit()
        return facility


@pytest.fixture
async def admin():
    return await create_user("admin@example.com", UserRole.ADMIN)


@pytest.fixture
async def owner():
    return await create_user("owner@example.com", UserRole.FACILITY_OWNER)


@pytest.fixture
async def player():
    return await create_user("player@example.com")
