"""Payment intent coordination for bookings.

Each booking attempt owns at most one live Stripe PaymentIntent. This module
creates or reuses that intent, applies the provider's terminal outcome back
onto the booking (from the client confirmation or the webhook, whichever
lands first) and cancels holds whose intent outlived its time-to-live.

Failed payments keep the slot held so the player can retry with a fresh
intent; after ``settings.max_payment_attempts`` failures the booking is
cancelled and the slot released.
"""

import enum
import logging
from dataclasses import dataclass
from datetime import date, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import NotFoundError, PreconditionError, ValidationError
from app.models.base import utcnow
from app.models.booking import Booking, BookingStatus, PaymentStatus
from app.services import stripe_service

logger = logging.getLogger(__name__)


class PaymentOutcome(enum.StrEnum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class IntentHandle:
    booking_id: int
    payment_intent_id: str
    client_secret: str | None
    amount_paise: int
    reused: bool = False


def hold_deadline():
    return utcnow() + timedelta(minutes=settings.payment_intent_ttl_minutes)


def outcome_from_intent(intent) -> PaymentOutcome | None:
    """Map a Stripe PaymentIntent to a terminal outcome, or None while it is still in flight.

    ``requires_payment_method`` is also the initial state, so it only counts
    as a failure once an attempt has left a ``last_payment_error``.
    """
    status = intent.status
    if status == "succeeded":
        return PaymentOutcome.SUCCEEDED
    if status == "canceled":
        return PaymentOutcome.FAILED
    if status == "requires_payment_method" and getattr(intent, "last_payment_error", None):
        return PaymentOutcome.FAILED
    return None


# ---------------------------------------------------------------------------
# Expiry
# ---------------------------------------------------------------------------


def _expired_holds_query():
    return select(Booking).where(
        Booking.status == BookingStatus.PENDING,
        Booking.hold_expires_at.is_not(None),
        Booking.hold_expires_at <= utcnow(),
    )


async def _cancel_expired(booking: Booking) -> None:
    booking.status = BookingStatus.CANCELLED
    booking.cancelled_at = utcnow()
    booking.cancellation_reason = "payment_expired"
    logger.info("Booking %s hold expired; slot released", booking.id)
    if booking.stripe_payment_intent_id and booking.payment_status == PaymentStatus.PENDING:
        await stripe_service.cancel_payment_intent(booking.stripe_payment_intent_id)


async def expire(db: AsyncSession, booking_id: int) -> bool:
    """Cancel a pending booking whose payment hold has run out. Returns True if it was expired.

    ``payment_status`` is left as it was.
    """
    result = await db.execute(_expired_holds_query().where(Booking.id == booking_id).with_for_update())
    booking = result.scalar_one_or_none()
    if booking is None:
        return False

    await _cancel_expired(booking)
    await db.flush()
    return True


async def release_expired_holds(
    db: AsyncSession,
    facility_id: int | None = None,
    booking_date: date | None = None,
) -> int:
    """Expire every overdue hold, optionally narrowed to one facility/date. Returns the count."""
    query = _expired_holds_query()
    if facility_id is not None:
        query = query.where(Booking.facility_id == facility_id)
    if booking_date is not None:
        query = query.where(Booking.booking_date == booking_date)

    result = await db.execute(query.with_for_update())
    bookings = result.scalars().all()
    for booking in bookings:
        await _cancel_expired(booking)

    if bookings:
        await db.flush()
    return len(bookings)


# ---------------------------------------------------------------------------
# Intent creation
# ---------------------------------------------------------------------------


async def create_intent(db: AsyncSession, booking_id: int, amount_paise: int, customer_id: str) -> IntentHandle:
    """Create (or reuse) the payment intent for a pending booking.

    A live intent, one still awaiting its outcome, is returned as-is so
    retries never open a second charge path. A new intent is created only
    when the booking has none yet or its last one failed.
    """
    if amount_paise <= 0:
        raise ValidationError("Payment amount must be positive.")

    if await expire(db, booking_id):
        raise PreconditionError("Payment window for this booking has expired.", details={"booking_id": booking_id})

    result = await db.execute(select(Booking).where(Booking.id == booking_id).with_for_update())
    booking = result.scalar_one_or_none()
    if booking is None:
        raise NotFoundError(f"Booking {booking_id} not found.")
    if booking.status != BookingStatus.PENDING:
        raise PreconditionError("Booking is not awaiting payment.", details={"booking_id": booking_id})

    if booking.stripe_payment_intent_id and booking.payment_status == PaymentStatus.PENDING:
        intent = await stripe_service.retrieve_payment_intent(booking.stripe_payment_intent_id)
        logger.info("Reusing live payment intent %s for booking %s", intent.id, booking.id)
        return IntentHandle(
            booking_id=booking.id,
            payment_intent_id=intent.id,
            client_secret=intent.client_secret,
            amount_paise=booking.total_amount_paise,
            reused=True,
        )

    superseded = booking.stripe_payment_intent_id if booking.payment_status == PaymentStatus.FAILED else None

    intent = await stripe_service.create_payment_intent(
        amount_paise,
        customer_id,
        booking.id,
        idempotency_key=f"booking-{booking.id}-attempt-{booking.payment_attempts + 1}",
    )
    booking.stripe_payment_intent_id = intent.id
    booking.payment_status = PaymentStatus.PENDING
    booking.hold_expires_at = hold_deadline()
    if superseded:
        extra = dict(booking.extra or {})
        extra["superseded_intents"] = [*extra.get("superseded_intents", []), superseded]
        booking.extra = extra
    await db.flush()
    logger.info("Created payment intent %s for booking %s (%d paise)", intent.id, booking.id, amount_paise)

    if superseded:
        await stripe_service.cancel_payment_intent(superseded)

    return IntentHandle(
        booking_id=booking.id,
        payment_intent_id=intent.id,
        client_secret=intent.client_secret,
        amount_paise=amount_paise,
    )


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------


def booking_id_from_intent(intent) -> int | None:
    """The booking id stamped into an intent's metadata at creation, if any."""
    metadata = intent["metadata"] if "metadata" in intent else None
    if not metadata or "booking_id" not in metadata:
        return None
    value = str(metadata["booking_id"])
    return int(value) if value.isdigit() else None


async def _superseded_owner(db: AsyncSession, intent_id: str, booking_id: int | None) -> Booking | None:
    if booking_id is None:
        return None
    result = await db.execute(select(Booking).where(Booking.id == booking_id).with_for_update())
    booking = result.scalar_one_or_none()
    if booking is None or intent_id not in (booking.extra or {}).get("superseded_intents", []):
        return None
    return booking


async def reconcile(
    db: AsyncSession,
    intent_id: str,
    outcome: PaymentOutcome,
    booking_id: int | None = None,
) -> Booking | None:
    """Apply a payment outcome to the booking that owns ``intent_id``.

    Safe to call any number of times: a duplicate delivery (the second of
    client confirmation and webhook, or a provider retry) leaves the booking
    unchanged. Returns the booking, or None for an unknown intent.

    ``booking_id`` (from the intent's metadata) lets an outcome for an intent
    that a retry has since replaced be traced to its booking; such outcomes
    never change the booking, but a success there is a charge to refund.
    """
    result = await db.execute(
        select(Booking).where(Booking.stripe_payment_intent_id == intent_id).with_for_update()
    )
    booking = result.scalar_one_or_none()
    if booking is None:
        previous = await _superseded_owner(db, intent_id, booking_id)
        if previous is None:
            logger.warning("Payment outcome %s for unknown intent %s ignored", outcome, intent_id)
        elif outcome == PaymentOutcome.SUCCEEDED:
            logger.warning(
                "Superseded intent %s of booking %s succeeded; refund needed", intent_id, previous.id
            )
            extra = dict(previous.extra or {})
            if intent_id not in extra.get("refund_intents", []):
                extra["refund_intents"] = [*extra.get("refund_intents", []), intent_id]
                previous.extra = extra
                await db.flush()
        return previous

    if booking.status == BookingStatus.CANCELLED:
        if outcome == PaymentOutcome.SUCCEEDED:
            logger.warning("Intent %s succeeded after booking %s was cancelled; refund needed", intent_id, booking.id)
        return booking

    if booking.payment_status == PaymentStatus.SUCCEEDED:
        logger.info("Duplicate %s delivery for intent %s (booking %s already paid)", outcome, intent_id, booking.id)
        return booking

    if outcome == PaymentOutcome.SUCCEEDED:
        booking.payment_status = PaymentStatus.SUCCEEDED
        booking.status = BookingStatus.CONFIRMED
        booking.confirmed_at = utcnow()
        logger.info("Booking %s confirmed by intent %s", booking.id, intent_id)
    elif booking.payment_status == PaymentStatus.FAILED:
        logger.info("Duplicate failure delivery for intent %s (booking %s)", intent_id, booking.id)
        return booking
    else:
        booking.payment_status = PaymentStatus.FAILED
        booking.payment_attempts += 1
        if booking.payment_attempts >= settings.max_payment_attempts:
            booking.status = BookingStatus.CANCELLED
            booking.cancelled_at = utcnow()
            booking.cancellation_reason = "payment_failed"
            logger.info("Booking %s cancelled after %d failed payments", booking.id, booking.payment_attempts)
        else:
            logger.info(
                "Payment failed for booking %s (attempt %d of %d); slot still held",
                booking.id,
                booking.payment_attempts,
                settings.max_payment_attempts,
            )

    await db.flush()
    return booking
