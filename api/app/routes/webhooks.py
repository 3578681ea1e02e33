"""Stripe webhook handler.

Processes payment_intent.succeeded and payment_intent.payment_failed events.
"""

import logging

import stripe
from fastapi import APIRouter, HTTPException, Request, status

from app.core.database import async_session_factory
from app.services import booking_lifecycle
from app.services.payments import PaymentOutcome, booking_id_from_intent
from app.services.stripe_service import construct_webhook_event

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

OUTCOMES = {
    "payment_intent.succeeded": PaymentOutcome.SUCCEEDED,
    "payment_intent.payment_failed": PaymentOutcome.FAILED,
    "payment_intent.canceled": PaymentOutcome.FAILED,
}


@router.post("/stripe")
async def stripe_webhook(request: Request):
    """Handle Stripe webhook events.

    Uses a dedicated DB session (not the request-scoped one) because webhook
    processing must commit independently of any ongoing request.
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature", "")

    try:
        event = construct_webhook_event(payload, sig_header)
    except (ValueError, stripe.SignatureVerificationError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid webhook signature") from None

    event_type = event["type"]
    outcome = OUTCOMES.get(event_type)
    if outcome is None:
        logger.debug("Ignoring webhook event %s", event_type)
        return {"status": "ignored"}

    intent = event["data"]["object"]
    async with async_session_factory() as db:
        await booking_lifecycle.confirm_payment(db, intent["id"], outcome, booking_id_from_intent(intent))
        await db.commit()

    return {"status": "ok"}
