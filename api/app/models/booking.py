"""Booking model.

A booking reserves a facility for a player on a date between a start and end
time. While ``status`` is pending the row is a provisional hold on the slot;
it becomes confirmed only once the payment intent succeeds, or is cancelled
by the user, an admin, repeated payment failure, or hold expiry.
"""

import enum
from datetime import date, datetime, time

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, JSONType, TimestampMixin


class BookingStatus(enum.StrEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class PaymentStatus(enum.StrEnum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    NOT_REQUIRED = "not_required"


# Bookings in these states occupy their slot.
LIVE_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)


class Booking(TimestampMixin, Base):
    __tablename__ = "bookings"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    # Weak reference: unlisting a facility never touches its past bookings.
    facility_id: Mapped[int] = mapped_column(ForeignKey("facilities.id"), nullable=False)

    # When
    booking_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)

    # Status
    status: Mapped[BookingStatus] = mapped_column(
        Enum(BookingStatus, name="booking_status", values_callable=lambda e: [x.value for x in e]),
        default=BookingStatus.PENDING,
        nullable=False,
    )
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancellation_reason: Mapped[str | None] = mapped_column(Text)

    # Payment
    payment_status: Mapped[PaymentStatus] = mapped_column(
        Enum(PaymentStatus, name="payment_status", values_callable=lambda e: [x.value for x in e]),
        default=PaymentStatus.PENDING,
        nullable=False,
    )
    total_amount_paise: Mapped[int] = mapped_column(Integer, nullable=False)
    stripe_payment_intent_id: Mapped[str | None] = mapped_column(String(100))
    payment_attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)  # failed intents so far
    hold_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Metadata
    notes: Mapped[str | None] = mapped_column(Text)
    extra: Mapped[dict | None] = mapped_column(JSONType, default=dict)

    # Relationships
    facility: Mapped["Facility"] = relationship(lazy="raise")
    user: Mapped["User"] = relationship(lazy="raise")

    __table_args__ = (
        CheckConstraint("status <> 'confirmed' OR payment_status = 'succeeded'", name="ck_bookings_confirmed_paid"),
        # Conflict check and availability grid
        Index("ix_bookings_facility_date", "facility_id", "booking_date"),
        # Fast lookups by user (my bookings)
        Index("ix_bookings_user", "user_id", "booking_date"),
        Index("ix_bookings_payment_intent", "stripe_payment_intent_id", unique=True),
        # Expiry sweep
        Index("ix_bookings_status_hold", "status", "hold_expires_at"),
    )

    def __repr__(self) -> str:
        return f"<Booking {self.booking_date} {self.start_time}-{self.end_time} facility={self.facility_id} {self.status}>"


# Import for type hints
from app.models.facility import Facility  # noqa: E402
from app.models.user import User  # noqa: E402
