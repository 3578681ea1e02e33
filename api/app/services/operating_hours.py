"""Operating hours and slot generation for facility availability.

Pure calculation module: no database, no async, no FastAPI dependencies.
Weekly hours are a tagged structure per weekday, either ``OpenDay`` with an
open and close time or ``ClosedDay``. They are validated once when a facility
is submitted; everything downstream works with the typed model.
"""

from datetime import date, datetime, time, timedelta
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
SLOT_MINUTES = 60


class OpenDay(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    open: time
    close: time
    closed: Literal[False] = False

    @model_validator(mode="after")
    def _close_after_open(self) -> "OpenDay":
        if self.open.tzinfo is not None or self.close.tzinfo is not None:
            raise ValueError("opening hours are local times without a UTC offset")
        if self.close <= self.open:
            raise ValueError("close must be later than open")
        return self


class ClosedDay(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    closed: Literal[True] = True


DayHours = OpenDay | ClosedDay


def _closed() -> ClosedDay:
    return ClosedDay()


class WeeklyHours(BaseModel):
    """Opening hours keyed by weekday. Days not listed are closed."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    monday: DayHours = Field(default_factory=_closed)
    tuesday: DayHours = Field(default_factory=_closed)
    wednesday: DayHours = Field(default_factory=_closed)
    thursday: DayHours = Field(default_factory=_closed)
    friday: DayHours = Field(default_factory=_closed)
    saturday: DayHours = Field(default_factory=_closed)
    sunday: DayHours = Field(default_factory=_closed)

    @classmethod
    def every_day(cls, open_time: time, close_time: time) -> "WeeklyHours":
        day = OpenDay(open=open_time, close=close_time)
        return cls(**{name: day for name in WEEKDAYS})

    def for_date(self, query_date: date) -> DayHours:
        return getattr(self, WEEKDAYS[query_date.weekday()])


def _whole_local_minute(t: time) -> bool:
    return t.tzinfo is None and t.second == 0 and t.microsecond == 0


def check_within_hours(hours: WeeklyHours, booking_date: date, start_time: time, end_time: time) -> str | None:
    """Return an error message if the range is not bookable on that day, else None."""
    if not (_whole_local_minute(start_time) and _whole_local_minute(end_time)):
        return "Booking times must be whole minutes in facility local time."
    if end_time <= start_time:
        return "End time must be after start time."

    day = hours.for_date(booking_date)
    weekday = WEEKDAYS[booking_date.weekday()].capitalize()
    if isinstance(day, ClosedDay):
        return f"Facility is closed on {weekday}."

    if start_time < day.open or end_time > day.close:
        return (
            f"Requested {start_time.strftime('%H:%M')}-{end_time.strftime('%H:%M')} is outside "
            f"opening hours on {weekday} ({day.open.strftime('%H:%M')}-{day.close.strftime('%H:%M')})."
        )
    return None


def intervals_overlap(a_start: time, a_end: time, b_start: time, b_end: time) -> bool:
    """Half-open interval test: [a_start, a_end) and [b_start, b_end) share at least one instant."""
    return a_start < b_end and b_start < a_end


def generate_slots(
    hours: WeeklyHours,
    query_date: date,
    booked_intervals: list[tuple[time, time]],
    now: datetime,
) -> list[dict]:
    """Generate all 60-minute slots inside opening hours for a given date.

    Returns a list of dicts with keys: start_time, end_time, is_available.
    ``now`` must be in the facility's local timezone; slots that have already
    started and slots overlapping live bookings are marked unavailable.
    """
    day = hours.for_date(query_date)
    if isinstance(day, ClosedDay):
        return []

    tz = now.tzinfo
    slots: list[dict] = []
    current = datetime.combine(query_date, day.open, tzinfo=tz)
    close = datetime.combine(query_date, day.close, tzinfo=tz)

    while current + timedelta(minutes=SLOT_MINUTES) <= close:
        slot_start = current.time()
        slot_end = (current + timedelta(minutes=SLOT_MINUTES)).time()

        is_past = current <= now
        has_conflict = any(intervals_overlap(slot_start, slot_end, b_start, b_end) for b_start, b_end in booked_intervals)

        slots.append(
            {
                "start_time": slot_start.strftime("%H:%M"),
                "end_time": slot_end.strftime("%H:%M"),
                "is_available": not is_past and not has_conflict,
            }
        )
        current += timedelta(minutes=SLOT_MINUTES)

    return slots
