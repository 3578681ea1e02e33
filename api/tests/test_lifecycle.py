"""Service-level tests for moderation concurrency, reservation races, reconciliation and hold expiry."""

import asyncio
import os
from datetime import date, time, timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from conftest import create_facility, create_user

from app.core.database import async_session_factory
from app.core.errors import ConflictError, PermissionDenied, StaleStateError, ValidationError
from app.models import ApprovalStatus, Booking, BookingStatus, Facility, PaymentStatus, UserRole
from app.models.base import utcnow
from app.services import booking_lifecycle, moderation, payments
from app.services.booking_lifecycle import BookingRequestResult
from app.services.payments import PaymentOutcome
from app.services.permissions import Actor

SATURDAY = date(2024, 6, 1)

# SQLite ignores FOR UPDATE, so reservation races are only meaningful on Postgres.
requires_row_locks = pytest.mark.skipif(
    not os.environ["QC_DATABASE_URL"].startswith("postgresql"),
    reason="needs a Postgres QC_DATABASE_URL",
)


async def _insert_booking(facility, user, intent_id="pi_svc", start=time(10, 0), end=time(11, 0), **fields) -> Booking:
    async with async_session_factory() as db:
        booking = Booking(
            user_id=user.id,
            facility_id=facility.id,
            booking_date=SATURDAY,
            start_time=start,
            end_time=end,
            duration_minutes=60,
            total_amount_paise=80000,
            stripe_payment_intent_id=intent_id,
            hold_expires_at=fields.pop("hold_expires_at", None) or payments.hold_deadline(),
            **fields,
        )
        db.add(booking)
        await db.commit()
        return booking


def _flaky_flush(failures: int):
    """Replacement for AsyncSession.flush that loses the version race ``failures`` times."""
    real_flush = AsyncSession.flush
    calls = []

    async def flush(self, *args, **kwargs):
        calls.append(1)
        if len(calls) <= failures:
            raise StaleDataError("UPDATE statement on table 'facilities' expected to update 1 row(s); 0 were matched.")
        return await real_flush(self, *args, **kwargs)

    return flush, calls


# ---------------------------------------------------------------------------
# Moderation
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_concurrent_write_is_retried(admin, owner, monkeypatch):
    facility = await create_facility(owner, approval_status=ApprovalStatus.PENDING, is_active=False)
    flush, calls = _flaky_flush(failures=1)
    monkeypatch.setattr(AsyncSession, "flush", flush)

    async with async_session_factory() as db:
        approved = await moderation.approve(db, Actor.of(admin), facility.id)
        await db.commit()

    assert len(calls) == 2
    assert approved.approval_status == ApprovalStatus.APPROVED
    assert approved.approved_by == admin.id


@pytest.mark.asyncio
async def test_concurrent_write_gives_up_after_retries(admin, owner, monkeypatch):
    facility = await create_facility(owner, approval_status=ApprovalStatus.PENDING, is_active=False)
    flush, calls = _flaky_flush(failures=10)
    monkeypatch.setattr(AsyncSession, "flush", flush)

    async with async_session_factory() as db:
        with pytest.raises(StaleStateError):
            await moderation.approve(db, Actor.of(admin), facility.id)

    assert len(calls) == 3


@pytest.mark.asyncio
async def test_version_moves_on_every_write(admin, owner):
    facility = await create_facility(owner, approval_status=ApprovalStatus.PENDING, is_active=False)
    actor = Actor.of(admin)

    async with async_session_factory() as db:
        await moderation.approve(db, actor, facility.id, expected_version=1)
        await moderation.toggle_visibility(db, actor, facility.id, True, expected_version=2)
        rejected = await moderation.reject(db, actor, facility.id, "Closed for renovation", expected_version=3)
        await db.commit()

    assert rejected.version == 4
    assert rejected.is_active is False
    assert rejected.approved_at is None


@pytest.mark.asyncio
async def test_blank_reason_and_non_admin_leave_state_alone(owner):
    facility = await create_facility(owner, approval_status=ApprovalStatus.PENDING, is_active=False)
    async with async_session_factory() as db:
        with pytest.raises(PermissionDenied):
            await moderation.reject(db, Actor.of(owner), facility.id, "nope")

    async with async_session_factory() as db:
        with pytest.raises(ValidationError):
            await moderation.reject(db, Actor(id=999, role=UserRole.ADMIN), facility.id, "")

        current = await db.get(Facility, facility.id)
        assert current.approval_status == ApprovalStatus.PENDING


# ---------------------------------------------------------------------------
# Reservation race
# ---------------------------------------------------------------------------


@requires_row_locks
@pytest.mark.asyncio
async def test_concurrent_overlapping_requests_admit_exactly_one(owner, player, stripe_mock):
    rival = await create_user("rival@example.com")
    facility = await create_facility(owner)

    async def reserve(user, start, end):
        async with async_session_factory() as db:
            return await booking_lifecycle.request_booking(db, user, facility.id, SATURDAY, start, end)

    results = await asyncio.gather(
        reserve(player, time(10, 0), time(11, 0)),
        reserve(rival, time(10, 30), time(11, 30)),
        return_exceptions=True,
    )

    assert sum(isinstance(r, BookingRequestResult) for r in results) == 1
    assert sum(isinstance(r, ConflictError) for r in results) == 1

    async with async_session_factory() as db:
        live = (
            await db.execute(
                select(Booking).where(Booking.facility_id == facility.id, Booking.status == BookingStatus.PENDING)
            )
        ).scalars().all()
    assert len(live) == 1


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_reconcile_is_idempotent(owner, player):
    facility = await create_facility(owner)
    booking = await _insert_booking(facility, player)

    async with async_session_factory() as db:
        first = await payments.reconcile(db, "pi_svc", PaymentOutcome.SUCCEEDED)
        await db.commit()
    assert first.status == BookingStatus.CONFIRMED

    async with async_session_factory() as db:
        again = await payments.reconcile(db, "pi_svc", PaymentOutcome.SUCCEEDED)
        confirmed_at = again.confirmed_at
        late_failure = await payments.reconcile(db, "pi_svc", PaymentOutcome.FAILED)
        assert not db.dirty
        await db.commit()

    assert again.id == late_failure.id == booking.id
    assert late_failure.status == BookingStatus.CONFIRMED
    assert late_failure.payment_status == PaymentStatus.SUCCEEDED
    assert late_failure.confirmed_at == confirmed_at
    assert late_failure.payment_attempts == 0


@pytest.mark.asyncio
async def test_reconcile_unknown_intent(player):
    async with async_session_factory() as db:
        assert await payments.reconcile(db, "pi_missing", PaymentOutcome.SUCCEEDED) is None


@pytest.mark.asyncio
async def test_reconcile_respects_attempt_limit(owner, player, monkeypatch):
    monkeypatch.setattr(payments.settings, "max_payment_attempts", 1)
    facility = await create_facility(owner)
    await _insert_booking(facility, player)

    async with async_session_factory() as db:
        booking = await payments.reconcile(db, "pi_svc", PaymentOutcome.FAILED)
        await db.commit()

    assert booking.status == BookingStatus.CANCELLED
    assert booking.cancellation_reason == "payment_failed"


# ---------------------------------------------------------------------------
# Expiry
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_release_expired_holds_only_touches_overdue_pending(owner, player, stripe_mock):
    facility = await create_facility(owner)
    overdue = await _insert_booking(facility, player, intent_id="pi_old", hold_expires_at=utcnow() - timedelta(minutes=5))
    fresh = await _insert_booking(facility, player, intent_id="pi_new", start=time(12, 0), end=time(13, 0))
    paid = await _insert_booking(
        facility,
        player,
        intent_id="pi_paid",
        start=time(14, 0),
        end=time(15, 0),
        status=BookingStatus.CONFIRMED,
        payment_status=PaymentStatus.SUCCEEDED,
        hold_expires_at=utcnow() - timedelta(minutes=5),
    )

    async with async_session_factory() as db:
        released = await payments.release_expired_holds(db)
        await db.commit()

    assert released == 1
    stripe_mock.cancel.assert_awaited_once_with("pi_old")

    async with async_session_factory() as db:
        statuses = dict(
            (await db.execute(select(Booking.id, Booking.status).where(Booking.facility_id == facility.id))).all()
        )
    assert statuses == {
        overdue.id: BookingStatus.CANCELLED,
        fresh.id: BookingStatus.PENDING,
        paid.id: BookingStatus.CONFIRMED,
    }


@pytest.mark.asyncio
async def test_worker_sweep(owner, player, stripe_mock):
    from app.worker import _sweep_expired_holds

    facility = await create_facility(owner)
    await _insert_booking(facility, player, hold_expires_at=utcnow() - timedelta(minutes=1))

    assert await _sweep_expired_holds() == 1
    assert await _sweep_expired_holds() == 0
