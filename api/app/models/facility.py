"""Facility model.

A facility is a bookable sports venue listed by a facility owner. Two
independent flags govern it: ``approval_status`` (admin moderation) and
``is_active`` (public listing). Only an approved facility may be listed.
"""

import enum
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    TypeDecorator,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, JSONType, TimestampMixin
from app.services.operating_hours import WeeklyHours

if TYPE_CHECKING:
    from app.models.user import User


class ApprovalStatus(enum.StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class SportType(enum.StrEnum):
    BADMINTON = "badminton"
    TENNIS = "tennis"
    BASKETBALL = "basketball"
    FOOTBALL = "football"
    TABLE_TENNIS = "table_tennis"
    SQUASH = "squash"


class WeeklyHoursType(TypeDecorator):
    """Stores WeeklyHours as JSON and hands back the typed model on load."""

    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(JSONB())
        return dialect.type_descriptor(JSON())

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if not isinstance(value, WeeklyHours):
            value = WeeklyHours.model_validate(value)
        return value.model_dump(mode="json")

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return WeeklyHours.model_validate(value)


class Facility(TimestampMixin, Base):
    __tablename__ = "facilities"

    id: Mapped[int] = mapped_column(primary_key=True)
    owner_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)

    # Location
    address: Mapped[str] = mapped_column(Text, nullable=False)
    city: Mapped[str] = mapped_column(String(100), nullable=False)
    latitude: Mapped[Decimal | None] = mapped_column(Numeric(10, 7))
    longitude: Mapped[Decimal | None] = mapped_column(Numeric(10, 7))

    # Listing content
    sport_types: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    amenities: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    images: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    operating_hours: Mapped[WeeklyHours] = mapped_column(WeeklyHoursType, nullable=False)

    # Pricing (paise to avoid float issues)
    price_per_hour_paise: Mapped[int] = mapped_column(Integer, nullable=False)

    # Moderation
    approval_status: Mapped[ApprovalStatus] = mapped_column(
        Enum(ApprovalStatus, name="approval_status", values_callable=lambda e: [x.value for x in e]),
        default=ApprovalStatus.PENDING,
        nullable=False,
    )
    rejection_reason: Mapped[str | None] = mapped_column(Text)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    approved_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"))
    is_active: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Aggregate of reviews.rating, recomputed on each review write
    rating: Mapped[Decimal] = mapped_column(Numeric(2, 1), default=Decimal("0.0"), nullable=False)
    total_reviews: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Optimistic concurrency: every UPDATE is guarded by the version it read
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    owner: Mapped["User"] = relationship(foreign_keys=[owner_id], lazy="raise")

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("NOT is_active OR approval_status = 'approved'", name="ck_facilities_listed_only_if_approved"),
        # Public listing queries
        Index("ix_facilities_approved_active", "approval_status", "is_active"),
        Index("ix_facilities_owner", "owner_id"),
    )

    @property
    def is_bookable(self) -> bool:
        return self.approval_status == ApprovalStatus.APPROVED and self.is_active

    def __repr__(self) -> str:
        return f"<Facility {self.name} ({self.approval_status}, active={self.is_active}) v{self.version}>"
