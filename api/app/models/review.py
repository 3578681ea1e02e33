"""Review model.

A player's 1-5 star rating of a facility, at most one per player per
facility. The facility's ``rating`` and ``total_reviews`` are recomputed
from this table whenever a review is written.
"""

from sqlalchemy import CheckConstraint, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, TimestampMixin


class Review(TimestampMixin, Base):
    __tablename__ = "reviews"

    id: Mapped[int] = mapped_column(primary_key=True)
    facility_id: Mapped[int] = mapped_column(ForeignKey("facilities.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    comment: Mapped[str | None] = mapped_column(Text)

    __table_args__ = (
        CheckConstraint("rating BETWEEN 1 AND 5", name="ck_reviews_rating_range"),
        UniqueConstraint("facility_id", "user_id", name="uq_reviews_facility_user"),
    )

    def __repr__(self) -> str:
        return f"<Review {self.rating}/5 facility={self.facility_id} user={self.user_id}>"
