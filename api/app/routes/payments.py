"""Payment routes: start a booking payment and confirm it from the client.

The client-side confirmation is one of two ways an outcome arrives; the
Stripe webhook is the other. The outcome is always read back from Stripe,
never taken from the request body, and applying it twice is harmless.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.dependencies import get_current_user
from app.core.errors import NotFoundError, PermissionDenied
from app.models.booking import Booking
from app.models.user import User
from app.schemas import BookingOut, PaymentConfirmOut, PaymentConfirmRequest, PaymentIntentOut, PaymentIntentRequest
from app.services import booking_lifecycle, stripe_service
from app.services.payments import outcome_from_intent

logger = logging.getLogger(__name__)

router = APIRouter(tags=["payments"])


@router.post("/create-booking-payment", response_model=PaymentIntentOut)
async def create_booking_payment(
    body: PaymentIntentRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    handle = await booking_lifecycle.start_payment(db, user, body.booking_id)
    return PaymentIntentOut(
        booking_id=handle.booking_id,
        payment_intent_id=handle.payment_intent_id,
        client_secret=handle.client_secret,
        amount_paise=handle.amount_paise,
    )


@router.post("/payments/confirm", response_model=PaymentConfirmOut)
async def confirm_payment(
    body: PaymentConfirmRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(select(Booking).where(Booking.stripe_payment_intent_id == body.payment_intent_id))
    booking = result.scalar_one_or_none()
    if booking is None:
        raise NotFoundError("No booking uses this payment intent.")
    if booking.user_id != user.id and not user.is_admin:
        raise PermissionDenied("You cannot confirm this payment.")

    intent = await stripe_service.retrieve_payment_intent(body.payment_intent_id)
    outcome = outcome_from_intent(intent)
    if outcome is not None:
        booking = await booking_lifecycle.confirm_payment(db, body.payment_intent_id, outcome)
    else:
        logger.info("Intent %s still %s; nothing to apply", body.payment_intent_id, intent.status)

    return PaymentConfirmOut(
        payment_intent_id=body.payment_intent_id,
        intent_status=intent.status,
        booking=BookingOut.model_validate(booking) if booking is not None else None,
    )
