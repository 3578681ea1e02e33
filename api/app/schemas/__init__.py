"""Pydantic schemas for API serialisation."""

from datetime import date, datetime, time
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, HttpUrl, field_validator

from app.models.booking import BookingStatus, PaymentStatus
from app.models.facility import ApprovalStatus, SportType
from app.models.user import UserRole
from app.services.operating_hours import WeeklyHours

# --- Auth ---


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8)
    first_name: str
    last_name: str
    phone: str | None = None
    role: UserRole = UserRole.USER

    @field_validator("role")
    @classmethod
    def _no_self_registered_admins(cls, role: UserRole) -> UserRole:
        if role == UserRole.ADMIN:
            raise ValueError("admin accounts cannot be self-registered")
        return role


class RefreshRequest(BaseModel):
    refresh_token: str


# --- User ---


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    first_name: str
    last_name: str
    phone: str | None
    role: UserRole
    is_active: bool
    is_banned: bool


class UserUpdate(BaseModel):
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None
    role: UserRole | None = None
    is_active: bool | None = None

    # Omit a field to leave it alone; only phone may be cleared.
    @field_validator("first_name", "last_name", "role", "is_active")
    @classmethod
    def _not_null(cls, value, info):
        if value is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return value


# --- Facility ---


class FacilityCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: str | None = None
    address: str = Field(min_length=1)
    city: str = Field(min_length=1, max_length=100)
    latitude: Decimal | None = Field(default=None, ge=-90, le=90)
    longitude: Decimal | None = Field(default=None, ge=-180, le=180)
    sport_types: list[SportType] = Field(min_length=1)
    amenities: list[str] = []
    images: list[HttpUrl] = []
    operating_hours: WeeklyHours
    price_per_hour_paise: int = Field(gt=0)

    def to_fields(self) -> dict:
        data = self.model_dump(exclude={"operating_hours"}, mode="json")
        data["latitude"] = self.latitude
        data["longitude"] = self.longitude
        data["operating_hours"] = self.operating_hours
        return data


class FacilityUpdate(BaseModel):
    """Partial edit of a facility's listing content."""

    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    address: str | None = Field(default=None, min_length=1)
    city: str | None = Field(default=None, min_length=1, max_length=100)
    latitude: Decimal | None = Field(default=None, ge=-90, le=90)
    longitude: Decimal | None = Field(default=None, ge=-180, le=180)
    sport_types: list[SportType] | None = Field(default=None, min_length=1)
    amenities: list[str] | None = None
    images: list[HttpUrl] | None = None
    operating_hours: WeeklyHours | None = None
    price_per_hour_paise: int | None = Field(default=None, gt=0)
    expected_version: int | None = None

    @field_validator(
        "name", "address", "city", "sport_types", "amenities", "images", "operating_hours", "price_per_hour_paise"
    )
    @classmethod
    def _not_null(cls, value, info):
        if value is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return value

    def to_changes(self) -> dict:
        changes = self.model_dump(exclude_unset=True, exclude={"expected_version", "operating_hours"}, mode="json")
        for field in ("latitude", "longitude", "operating_hours"):
            if field in self.model_fields_set:
                changes[field] = getattr(self, field)
        return changes


class FacilityOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    owner_id: int
    name: str
    description: str | None
    address: str
    city: str
    latitude: Decimal | None
    longitude: Decimal | None
    sport_types: list[SportType]
    amenities: list[str]
    images: list[str]
    operating_hours: WeeklyHours
    price_per_hour_paise: int
    approval_status: ApprovalStatus
    rejection_reason: str | None
    is_active: bool
    rating: Decimal
    total_reviews: int
    version: int
    created_at: datetime


class FacilityDecision(BaseModel):
    is_approved: bool
    rejection_reason: str | None = None
    expected_version: int | None = None


class VisibilityUpdate(BaseModel):
    is_active: bool
    expected_version: int | None = None


# --- Booking ---


class BookingCreate(BaseModel):
    facility_id: int
    booking_date: date
    start_time: time
    end_time: time
    notes: str | None = None

    @field_validator("start_time", "end_time")
    @classmethod
    def _local_time(cls, value: time) -> time:
        if value.tzinfo is not None:
            raise ValueError("times are facility local time and must not carry a UTC offset")
        return value


class BookingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    facility_id: int
    user_id: int
    booking_date: date
    start_time: time
    end_time: time
    duration_minutes: int
    status: BookingStatus
    payment_status: PaymentStatus
    total_amount_paise: int
    stripe_payment_intent_id: str | None
    hold_expires_at: datetime | None
    cancellation_reason: str | None
    notes: str | None
    created_at: datetime
    client_secret: str | None = None


# --- Availability ---


class SlotOut(BaseModel):
    start_time: str  # "HH:MM"
    end_time: str  # "HH:MM"
    is_available: bool


class AvailabilityOut(BaseModel):
    facility_id: int
    facility_name: str
    date: date
    slots: list[SlotOut]


# --- Payments ---


class PaymentIntentRequest(BaseModel):
    booking_id: int


class PaymentIntentOut(BaseModel):
    booking_id: int
    payment_intent_id: str
    client_secret: str | None
    amount_paise: int


class PaymentConfirmRequest(BaseModel):
    payment_intent_id: str


class PaymentConfirmOut(BaseModel):
    payment_intent_id: str
    intent_status: str
    booking: BookingOut | None


# --- Reviews ---


class ReviewCreate(BaseModel):
    rating: int = Field(ge=1, le=5)
    comment: str | None = Field(default=None, max_length=2000)


class ReviewOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    facility_id: int
    user_id: int
    rating: int
    comment: str | None
    created_at: datetime
