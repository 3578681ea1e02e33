"""Pricing service for booking amount calculation.

The amount is the facility's hourly price prorated per minute, with two
multipliers:

- peak: minutes falling inside the peak window (default 18:00-22:00) cost
  ``peak_multiplier`` times the base rate (default 1.25x);
- weekend: every minute on a Saturday or Sunday is further multiplied by
  ``weekend_multiplier`` (default 1.00x, so weekends price like weekdays
  unless configured otherwise).

The result is rounded half-up to whole paise. The same inputs always give
the same amount, and the breakdown is stored on the booking for billing.
"""

from dataclasses import asdict, dataclass
from datetime import date, datetime, time
from decimal import ROUND_HALF_UP, Decimal

from app.core.config import settings


def _parse_time(s: str) -> time:
    h, m = map(int, s.split(":"))
    return time(h, m)


def _minutes(t: time) -> int:
    return t.hour * 60 + t.minute


@dataclass(frozen=True)
class PricingPolicy:
    peak_start: time = time(18, 0)
    peak_end: time = time(22, 0)
    peak_multiplier: Decimal = Decimal("1.25")
    weekend_multiplier: Decimal = Decimal("1.00")

    @classmethod
    def from_settings(cls) -> "PricingPolicy":
        return cls(
            peak_start=_parse_time(settings.pricing_peak_start),
            peak_end=_parse_time(settings.pricing_peak_end),
            peak_multiplier=Decimal(settings.pricing_peak_multiplier),
            weekend_multiplier=Decimal(settings.pricing_weekend_multiplier),
        )


@dataclass(frozen=True)
class PriceQuote:
    total_paise: int
    duration_minutes: int
    peak_minutes: int
    day_multiplier: Decimal

    def breakdown(self) -> dict:
        data = asdict(self)
        data["day_multiplier"] = str(self.day_multiplier)
        return data


def duration_minutes(start_time: time, end_time: time) -> int:
    start = datetime.combine(date.min, start_time)
    end = datetime.combine(date.min, end_time)
    return int((end - start).total_seconds() // 60)


def peak_overlap_minutes(start_time: time, end_time: time, policy: PricingPolicy) -> int:
    lo = max(_minutes(start_time), _minutes(policy.peak_start))
    hi = min(_minutes(end_time), _minutes(policy.peak_end))
    return max(0, hi - lo)


def calculate_price(
    price_per_hour_paise: int,
    booking_date: date,
    start_time: time,
    end_time: time,
    policy: PricingPolicy | None = None,
) -> PriceQuote:
    """Calculate the booking amount in paise. Assumes end_time > start_time."""
    policy = policy or PricingPolicy.from_settings()

    total_minutes = duration_minutes(start_time, end_time)
    peak = peak_overlap_minutes(start_time, end_time, policy)
    weighted_minutes = Decimal(total_minutes - peak) + Decimal(peak) * policy.peak_multiplier

    day_multiplier = policy.weekend_multiplier if booking_date.weekday() >= 5 else Decimal("1")

    amount = Decimal(price_per_hour_paise) * weighted_minutes * day_multiplier / Decimal(60)
    total = int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    return PriceQuote(
        total_paise=total,
        duration_minutes=total_minutes,
        peak_minutes=peak,
        day_multiplier=day_multiplier,
    )
