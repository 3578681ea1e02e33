"""All models imported here for metadata discovery."""

from app.models.base import Base
from app.models.booking import Booking, BookingStatus, PaymentStatus
from app.models.facility import ApprovalStatus, Facility, SportType
from app.models.review import Review
from app.models.user import User, UserRole

__all__ = [
    "Base",
    "User",
    "UserRole",
    "Facility",
    "ApprovalStatus",
    "SportType",
    "Booking",
    "BookingStatus",
    "PaymentStatus",
    "Review",
]
