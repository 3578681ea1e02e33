"""Facility routes: public listing, availability and reviews; owner submission, edits, bookings and visibility."""

from datetime import date, datetime
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.dependencies import get_current_user, require_facility_owner
from app.core.errors import NotFoundError, PermissionDenied
from app.models.booking import LIVE_STATUSES, Booking, BookingStatus
from app.models.facility import ApprovalStatus, Facility, SportType
from app.models.user import User, UserRole
from app.schemas import (
    AvailabilityOut,
    BookingOut,
    FacilityCreate,
    FacilityOut,
    FacilityUpdate,
    ReviewCreate,
    ReviewOut,
    SlotOut,
    VisibilityUpdate,
)
from app.services import moderation, reviews
from app.services.booking_rules import load_facility
from app.services.email import send_facility_submitted_email
from app.services.operating_hours import generate_slots
from app.services.payments import release_expired_holds
from app.services.permissions import Actor, can_view_facility_bookings

router = APIRouter(prefix="/facilities", tags=["facilities"])


async def _get_listed(db: AsyncSession, facility_id: int) -> Facility:
    facility = await load_facility(db, facility_id)
    if not facility.is_bookable:
        # Unlisted facilities are invisible to the public, not forbidden.
        raise NotFoundError(f"Facility {facility_id} not found.")
    return facility


async def _notify_admins(db: AsyncSession, facility: Facility) -> None:
    admins = await db.execute(
        select(User.email).where(User.role == UserRole.ADMIN, User.is_active.is_(True), User.is_banned.is_(False))
    )
    await send_facility_submitted_email(list(admins.scalars().all()), facility)


# ---------------------------------------------------------------------------
# Owner endpoints
# ---------------------------------------------------------------------------


@router.post("", response_model=FacilityOut, status_code=status.HTTP_201_CREATED)
async def submit_facility(
    body: FacilityCreate,
    user: User = Depends(require_facility_owner),
    db: AsyncSession = Depends(get_db),
):
    facility = await moderation.submit_facility(db, Actor.of(user), **body.to_fields())
    await db.commit()
    await _notify_admins(db, facility)
    return facility


@router.get("/mine", response_model=list[FacilityOut])
async def list_my_facilities(
    user: User = Depends(require_facility_owner),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(select(Facility).where(Facility.owner_id == user.id).order_by(Facility.created_at.desc()))
    return result.scalars().all()


@router.patch("/{facility_id}", response_model=FacilityOut)
async def edit_facility(
    facility_id: int,
    body: FacilityUpdate,
    user: User = Depends(require_facility_owner),
    db: AsyncSession = Depends(get_db),
):
    """Edit listing content. An owner's edit sends the facility back for approval."""
    facility = await moderation.edit_facility(db, Actor.of(user), facility_id, body.to_changes(), body.expected_version)
    await db.commit()
    if facility.approval_status == ApprovalStatus.PENDING:
        await _notify_admins(db, facility)
    return facility


@router.get("/{facility_id}/bookings", response_model=list[BookingOut])
async def list_facility_bookings(
    facility_id: int,
    booking_date: date | None = Query(None, alias="date"),
    status_filter: BookingStatus | None = Query(None, alias="status"),
    user: User = Depends(require_facility_owner),
    db: AsyncSession = Depends(get_db),
):
    facility = await load_facility(db, facility_id)
    if not can_view_facility_bookings(Actor.of(user), facility):
        raise PermissionDenied("You cannot view bookings for this facility.")

    query = select(Booking).where(Booking.facility_id == facility.id)
    if booking_date is not None:
        query = query.where(Booking.booking_date == booking_date)
    if status_filter is not None:
        query = query.where(Booking.status == status_filter)
    result = await db.execute(query.order_by(Booking.booking_date, Booking.start_time).limit(200))
    return result.scalars().all()


@router.patch("/{facility_id}/visibility", response_model=FacilityOut)
async def set_visibility(
    facility_id: int,
    body: VisibilityUpdate,
    user: User = Depends(require_facility_owner),
    db: AsyncSession = Depends(get_db),
):
    return await moderation.toggle_visibility(db, Actor.of(user), facility_id, body.is_active, body.expected_version)


# ---------------------------------------------------------------------------
# Public endpoints (no auth required)
# ---------------------------------------------------------------------------


@router.get("", response_model=list[FacilityOut])
async def list_facilities(
    city: str | None = None,
    sport: SportType | None = None,
    q: str | None = Query(None, description="Search by name"),
    db: AsyncSession = Depends(get_db),
):
    query = select(Facility).where(
        Facility.approval_status == ApprovalStatus.APPROVED,
        Facility.is_active.is_(True),
    )
    if city:
        query = query.where(Facility.city.ilike(city))
    if q:
        query = query.where(Facility.name.ilike(f"%{q}%"))

    result = await db.execute(query.order_by(Facility.rating.desc(), Facility.name))
    facilities = result.scalars().all()
    # sport_types is a JSON list; filter in Python to stay portable across databases.
    if sport:
        facilities = [f for f in facilities if sport.value in f.sport_types]
    return facilities


@router.get("/{facility_id}", response_model=FacilityOut)
async def get_facility(facility_id: int, db: AsyncSession = Depends(get_db)):
    return await _get_listed(db, facility_id)


@router.get("/{facility_id}/availability", response_model=AvailabilityOut)
async def get_availability(
    facility_id: int,
    query_date: date = Query(..., alias="date", description="Date in YYYY-MM-DD format"),
    db: AsyncSession = Depends(get_db),
):
    """Hourly slot grid for one facility on one date. Pending holds count as taken."""
    facility = await _get_listed(db, facility_id)
    await release_expired_holds(db, facility_id=facility.id, booking_date=query_date)

    bookings_result = await db.execute(
        select(Booking.start_time, Booking.end_time).where(
            Booking.facility_id == facility.id,
            Booking.booking_date == query_date,
            Booking.status.in_(LIVE_STATUSES),
        )
    )
    booked_intervals = [(row.start_time, row.end_time) for row in bookings_result]

    now = datetime.now(ZoneInfo(settings.timezone))
    slots = generate_slots(facility.operating_hours, query_date, booked_intervals, now)

    return AvailabilityOut(
        facility_id=facility.id,
        facility_name=facility.name,
        date=query_date,
        slots=[SlotOut(**s) for s in slots],
    )


# ---------------------------------------------------------------------------
# Reviews
# ---------------------------------------------------------------------------


@router.get("/{facility_id}/reviews", response_model=list[ReviewOut])
async def list_facility_reviews(facility_id: int, db: AsyncSession = Depends(get_db)):
    facility = await _get_listed(db, facility_id)
    return await reviews.list_reviews(db, facility.id)


@router.post("/{facility_id}/reviews", response_model=ReviewOut, status_code=status.HTTP_201_CREATED)
async def review_facility(
    facility_id: int,
    body: ReviewCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await reviews.add_review(db, Actor.of(user), facility_id, body.rating, body.comment)
