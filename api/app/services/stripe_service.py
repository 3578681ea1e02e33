"""Stripe integration service for payment processing.

Wraps the Stripe Python SDK. All amounts are in paise (INR). The SDK is
synchronous, so each call runs in a worker thread and is bounded by
``settings.stripe_timeout_seconds``; provider errors and timeouts surface as
PaymentError.
"""

import asyncio
import logging

import stripe
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import PaymentError
from app.models.user import User

logger = logging.getLogger(__name__)


def _configure() -> None:
    """Set the Stripe API key from settings."""
    stripe.api_key = settings.stripe_secret_key


async def _call(operation: str, fn, *args, **kwargs):
    _configure()
    try:
        return await asyncio.wait_for(
            asyncio.to_thread(fn, *args, **kwargs),
            timeout=settings.stripe_timeout_seconds,
        )
    except TimeoutError:
        raise PaymentError(f"Payment provider timed out during {operation}.") from None
    except stripe.StripeError as exc:
        raise PaymentError(f"Payment provider rejected {operation}: {exc.user_message or exc}") from exc


async def ensure_stripe_customer(user: User, db: AsyncSession) -> str:
    """Get or create a Stripe customer for the user.

    Stores the customer ID on the User model for future use.
    """
    if user.stripe_customer_id:
        return user.stripe_customer_id

    customer = await _call(
        "customer creation",
        stripe.Customer.create,
        email=user.email,
        name=user.full_name,
        metadata={"quickcourt_user_id": str(user.id)},
    )
    user.stripe_customer_id = customer.id
    await db.flush()
    return customer.id


async def create_payment_intent(
    amount_paise: int,
    customer_id: str,
    booking_id: int,
    idempotency_key: str,
) -> stripe.PaymentIntent:
    """Create a Stripe PaymentIntent for a booking payment.

    The idempotency key makes a retried call (e.g. after a timeout) return
    the intent Stripe already created instead of opening a second one.
    Returns the PaymentIntent object (caller reads .id and .client_secret).
    """
    return await _call(
        "payment intent creation",
        stripe.PaymentIntent.create,
        amount=amount_paise,
        currency=settings.stripe_currency,
        customer=customer_id,
        metadata={"booking_id": str(booking_id)},
        automatic_payment_methods={"enabled": True},
        idempotency_key=idempotency_key,
    )


async def retrieve_payment_intent(payment_intent_id: str) -> stripe.PaymentIntent:
    return await _call("payment intent lookup", stripe.PaymentIntent.retrieve, payment_intent_id)


async def cancel_payment_intent(payment_intent_id: str) -> None:
    """Cancel an open PaymentIntent (booking cancelled or hold expired). Best effort."""
    try:
        await _call("payment intent cancellation", stripe.PaymentIntent.cancel, payment_intent_id)
    except PaymentError as exc:
        logger.warning("Could not cancel payment intent %s: %s", payment_intent_id, exc.message)


def construct_webhook_event(payload: bytes, sig_header: str) -> stripe.Event:
    """Verify and construct a Stripe webhook event."""
    return stripe.Webhook.construct_event(
        payload,
        sig_header,
        settings.stripe_webhook_secret,
    )
