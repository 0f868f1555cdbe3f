"""Clock helpers.

Timestamps are stored as naive UTC. Reservation windows and bill-number
dates arrive in other shapes, so everything is normalised here.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

from cafepos.core.config import settings


def utcnow() -> datetime:
    """Current time as naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def venue_tz() -> ZoneInfo:
    return ZoneInfo(settings.timezone)


def to_venue_local(value: datetime) -> datetime:
    """Naive UTC to aware venue-local time."""
    return value.replace(tzinfo=timezone.utc).astimezone(venue_tz())


def venue_day_bounds(day: date) -> Tuple[datetime, datetime]:
    """Naive UTC [start, end) of a calendar day in the venue timezone."""
    start = datetime.combine(day, time.min, tzinfo=venue_tz())
    end = start + timedelta(days=1)
    return to_naive_utc(start), to_naive_utc(end)


def venue_today(now: Optional[datetime] = None) -> date:
    return to_venue_local(now or utcnow()).date()
