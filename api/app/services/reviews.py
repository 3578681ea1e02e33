"""Facility reviews and the aggregate rating shown on listings."""

import logging
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import DuplicateError, NotFoundError, PermissionDenied
from app.models.facility import Facility
from app.models.review import Review
from app.services.booking_rules import load_facility
from app.services.permissions import Actor, can_review_facility

logger = logging.getLogger(__name__)


async def refresh_rating(db: AsyncSession, facility_id: int) -> tuple[Decimal, int]:
    """Recompute a facility's average rating (one decimal, half-up) and review count."""
    result = await db.execute(
        select(func.avg(Review.rating), func.count(Review.id)).where(Review.facility_id == facility_id)
    )
    average, total = result.one()
    rating = Decimal(str(average or 0)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)

    # Table-level UPDATE: the rating is derived data and must not bump the moderation version.
    await db.execute(
        update(Facility.__table__)
        .where(Facility.__table__.c.id == facility_id)
        .values(rating=rating, total_reviews=total)
    )
    return rating, total


async def add_review(db: AsyncSession, actor: Actor, facility_id: int, rating: int, comment: str | None) -> Review:
    """Record ``actor``'s review of a listed facility and update its aggregate rating."""
    # Serialise review writes on this facility so the aggregate sees every row.
    facility = await load_facility(db, facility_id, for_update=True)
    if not facility.is_bookable:
        raise NotFoundError(f"Facility {facility_id} not found.")
    if not can_review_facility(actor, facility):
        raise PermissionDenied("Owners cannot review their own facility.")

    existing = await db.execute(
        select(Review.id).where(Review.facility_id == facility_id, Review.user_id == actor.id)
    )
    if existing.scalar_one_or_none() is not None:
        raise DuplicateError("You have already reviewed this facility.", details={"facility_id": facility_id})

    review = Review(facility_id=facility_id, user_id=actor.id, rating=rating, comment=comment)
    db.add(review)
    await db.flush()

    average, total = await refresh_rating(db, facility_id)
    logger.info("Review %s (%d/5) on facility %s; rating now %s over %d", review.id, rating, facility_id, average, total)
    return review


async def list_reviews(db: AsyncSession, facility_id: int, limit: int = 50) -> list[Review]:
    result = await db.execute(
        select(Review).where(Review.facility_id == facility_id).order_by(Review.created_at.desc(), Review.id.desc()).limit(limit)
    )
    return list(result.scalars().all())
