"""Booking routes: create, list (player and owner views), cancel.

All rules (facility state, opening hours, overlap, price) and the payment
hand-off live in app.services.booking_lifecycle; handlers only translate
HTTP to service calls.
"""

from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.dependencies import get_current_user, require_facility_owner
from app.models.booking import Booking, BookingStatus
from app.models.facility import Facility
from app.models.user import User
from app.schemas import BookingCreate, BookingOut
from app.services import booking_lifecycle

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post("", response_model=BookingOut, status_code=status.HTTP_201_CREATED)
async def create_booking(
    body: BookingCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await booking_lifecycle.request_booking(
        db,
        user,
        facility_id=body.facility_id,
        booking_date=body.booking_date,
        start_time=body.start_time,
        end_time=body.end_time,
        notes=body.notes,
    )

    # client_secret is not a column, so attach it to the response by hand
    out = BookingOut.model_validate(result.booking)
    out.client_secret = result.client_secret
    return out


@router.get("", response_model=list[BookingOut])
async def list_my_bookings(
    status_filter: BookingStatus | None = Query(None, alias="status"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    query = select(Booking).where(Booking.user_id == user.id)
    if status_filter is not None:
        query = query.where(Booking.status == status_filter)
    result = await db.execute(query.order_by(Booking.booking_date.desc(), Booking.start_time.desc()).limit(50))
    return result.scalars().all()


@router.get("/owner", response_model=list[BookingOut])
async def list_owner_bookings(
    facility_id: int | None = None,
    booking_date: date | None = Query(None, alias="date"),
    status_filter: BookingStatus | None = Query(None, alias="status"),
    user: User = Depends(require_facility_owner),
    db: AsyncSession = Depends(get_db),
):
    """Bookings across every facility the caller owns."""
    query = select(Booking).join(Facility, Booking.facility_id == Facility.id).where(Facility.owner_id == user.id)
    if facility_id is not None:
        query = query.where(Booking.facility_id == facility_id)
    if booking_date is not None:
        query = query.where(Booking.booking_date == booking_date)
    if status_filter is not None:
        query = query.where(Booking.status == status_filter)
    result = await db.execute(query.order_by(Booking.booking_date.desc(), Booking.start_time).limit(200))
    return result.scalars().all()


@router.delete("/{booking_id}", status_code=status.HTTP_204_NO_CONTENT)
async def cancel_booking(
    booking_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await booking_lifecycle.cancel_booking(db, user, booking_id)
