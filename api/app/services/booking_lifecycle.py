"""Booking lifecycle: request -> hold -> pay -> confirm or cancel.

The reservation itself is a short critical section: the facility row is
locked, stale holds are released, the slot is validated and the pending
booking is committed. Only then is the payment provider called, so no lock
is ever held across network I/O. A provider failure after that point leaves
the booking pending; it can be retried via ``start_payment`` or simply
expires with its hold.
"""

import logging
from dataclasses import dataclass
from datetime import date, time

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotFoundError, PaymentError, PermissionDenied, PreconditionError
from app.models.base import utcnow
from app.models.booking import Booking, BookingStatus, PaymentStatus
from app.models.user import User
from app.services import payments, stripe_service
from app.services.booking_rules import load_facility, validate_slot
from app.services.payments import IntentHandle, PaymentOutcome
from app.services.permissions import can_cancel_booking

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookingRequestResult:
    booking: Booking
    client_secret: str | None


async def _get_booking(db: AsyncSession, booking_id: int, for_update: bool = False) -> Booking:
    query = select(Booking).where(Booking.id == booking_id)
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    booking = result.scalar_one_or_none()
    if booking is None:
        raise NotFoundError(f"Booking {booking_id} not found.")
    return booking


async def request_booking(
    db: AsyncSession,
    user: User,
    facility_id: int,
    booking_date: date,
    start_time: time,
    end_time: time,
    notes: str | None = None,
) -> BookingRequestResult:
    """Reserve a slot for ``user`` and open its payment intent."""
    # Serialise reservations on this facility until the commit below.
    await load_facility(db, facility_id, for_update=True)
    await payments.release_expired_holds(db, facility_id=facility_id, booking_date=booking_date)
    quote = await validate_slot(db, facility_id, booking_date, start_time, end_time)

    booking = Booking(
        user_id=user.id,
        facility_id=facility_id,
        booking_date=booking_date,
        start_time=start_time,
        end_time=end_time,
        duration_minutes=quote.price.duration_minutes,
        status=BookingStatus.PENDING,
        payment_status=PaymentStatus.PENDING,
        total_amount_paise=quote.total_amount_paise,
        hold_expires_at=payments.hold_deadline(),
        notes=notes,
        extra=quote.price.breakdown(),
    )
    db.add(booking)
    await db.commit()
    logger.info(
        "Booking %s held for user %s on facility %s (%s %s-%s, %d paise)",
        booking.id,
        user.id,
        facility_id,
        booking_date,
        start_time.strftime("%H:%M"),
        end_time.strftime("%H:%M"),
        booking.total_amount_paise,
    )

    try:
        customer_id = await stripe_service.ensure_stripe_customer(user, db)
        await db.commit()
        handle = await payments.create_intent(db, booking.id, booking.total_amount_paise, customer_id)
    except PaymentError as exc:
        logger.warning("Payment setup failed for booking %s: %s", booking.id, exc.message)
        raise PaymentError(exc.message, details={**exc.details, "booking_id": booking.id}) from exc

    return BookingRequestResult(booking=booking, client_secret=handle.client_secret)


async def start_payment(db: AsyncSession, user: User, booking_id: int) -> IntentHandle:
    """Issue (or re-issue) the payment intent for one of the user's pending bookings."""
    booking = await _get_booking(db, booking_id)
    if booking.user_id != user.id and not user.is_admin:
        raise PermissionDenied("You cannot pay for this booking.")

    if await payments.expire(db, booking.id):
        await db.commit()
        raise PreconditionError("Payment window for this booking has expired.", details={"booking_id": booking.id})
    if booking.status != BookingStatus.PENDING:
        raise PreconditionError("Booking is not awaiting payment.", details={"booking_id": booking.id})

    payer = user if booking.user_id == user.id else await db.get(User, booking.user_id)
    customer_id = await stripe_service.ensure_stripe_customer(payer, db)
    return await payments.create_intent(db, booking.id, booking.total_amount_paise, customer_id)


async def confirm_payment(
    db: AsyncSession,
    payment_intent_id: str,
    outcome: PaymentOutcome,
    booking_id: int | None = None,
) -> Booking | None:
    return await payments.reconcile(db, payment_intent_id, outcome, booking_id)


async def cancel_booking(db: AsyncSession, actor: User, booking_id: int) -> Booking:
    """Cancel a booking whatever its payment state. Cancelling twice is a no-op."""
    booking = await _get_booking(db, booking_id, for_update=True)
    if not can_cancel_booking(actor, booking):
        raise PermissionDenied("You cannot cancel this booking.")

    if booking.status == BookingStatus.CANCELLED:
        return booking

    live_intent = booking.stripe_payment_intent_id if booking.payment_status == PaymentStatus.PENDING else None

    booking.status = BookingStatus.CANCELLED
    booking.cancelled_at = utcnow()
    booking.cancellation_reason = "cancelled_by_user" if booking.user_id == actor.id else "cancelled_by_admin"
    await db.flush()
    logger.info("Booking %s cancelled by user %s", booking.id, actor.id)

    if live_intent:
        await stripe_service.cancel_payment_intent(live_intent)
    return booking
