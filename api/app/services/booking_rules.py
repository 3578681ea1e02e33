"""Booking slot validation.

All booking validation logic lives here, separate from the route handlers.
``validate_slot`` runs the checks in a fixed order and raises the first
failure: facility exists, facility is bookable, the range fits opening hours,
no live booking overlaps it. It then prices the slot; a slot that prices to
nothing is rejected too, so nothing is ever persisted for it.
"""

from dataclasses import dataclass
from datetime import date, time

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ConflictError, NotFoundError, PreconditionError, ValidationError
from app.models.booking import LIVE_STATUSES, Booking
from app.models.facility import Facility
from app.services.operating_hours import check_within_hours
from app.services.pricing import PriceQuote, PricingPolicy, calculate_price


@dataclass(frozen=True)
class SlotQuote:
    facility: Facility
    price: PriceQuote

    @property
    def total_amount_paise(self) -> int:
        return self.price.total_paise


async def load_facility(db: AsyncSession, facility_id: int, for_update: bool = False) -> Facility:
    query = select(Facility).where(Facility.id == facility_id)
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    facility = result.scalar_one_or_none()
    if facility is None:
        raise NotFoundError(f"Facility {facility_id} not found.")
    return facility


async def check_slot_conflict(
    db: AsyncSession,
    facility_id: int,
    booking_date: date,
    start_time: time,
    end_time: time,
) -> None:
    """No two live (pending or confirmed) bookings may overlap on the same facility and date.

    Pending bookings are provisional holds while their payment is in flight.
    """
    result = await db.execute(
        select(Booking)
        .where(
            Booking.facility_id == facility_id,
            Booking.booking_date == booking_date,
            Booking.status.in_(LIVE_STATUSES),
            Booking.start_time < end_time,
            Booking.end_time > start_time,
        )
        .order_by(Booking.start_time)
        .limit(1)
    )
    conflict = result.scalar_one_or_none()

    if conflict:
        raise ConflictError(
            f"Slot already booked from {conflict.start_time.strftime('%H:%M')} to {conflict.end_time.strftime('%H:%M')}.",
            details={"conflicting_start": conflict.start_time.strftime("%H:%M"), "conflicting_end": conflict.end_time.strftime("%H:%M")},
        )


async def validate_slot(
    db: AsyncSession,
    facility_id: int,
    booking_date: date,
    start_time: time,
    end_time: time,
    for_update: bool = False,
    policy: PricingPolicy | None = None,
) -> SlotQuote:
    """Validate a requested slot and price it.

    With ``for_update`` the facility row is locked for the rest of the
    transaction, which serialises concurrent reservations on that facility
    so the conflict check and the following insert act as one step.
    """
    # 1. Facility exists
    facility = await load_facility(db, facility_id, for_update=for_update)

    # 2. Facility is approved and listed
    if not facility.is_bookable:
        raise PreconditionError("Facility is not bookable.", details={"facility_id": facility_id})

    # 3. Time range and opening hours
    message = check_within_hours(facility.operating_hours, booking_date, start_time, end_time)
    if message:
        raise ValidationError(message)

    # 4. Overlap with live bookings
    await check_slot_conflict(db, facility_id, booking_date, start_time, end_time)

    # 5. Price
    price = calculate_price(facility.price_per_hour_paise, booking_date, start_time, end_time, policy)
    if price.total_paise <= 0:
        raise ValidationError("Booking is too short to be charged.", details={"duration_minutes": price.duration_minutes})
    return SlotQuote(facility=facility, price=price)
