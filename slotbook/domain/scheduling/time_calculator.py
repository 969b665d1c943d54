"""Time parsing and weekday arithmetic for the scheduling domain"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Union

from ...enums import Weekday
from ...errors import ValidationError

HM_FORMAT = "%H:%M"
_ACCEPTED_FORMATS = ("%H:%M", "%H:%M:%S")


def utc_now() -> datetime:
    """Current instant as naive UTC, the representation stored in the database"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Normalize aware datetimes to naive UTC; naive values are assumed UTC already"""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def parse_wall_clock(value: str) -> time:
    """
    Parse an "HH:MM" (or database "HH:MM:SS") wall-clock string.

    Raises:
        ValidationError: If the string is not a valid time of day
    """
    if not isinstance(value, str):
        raise ValidationError(f"Invalid time value: {value!r}")
    raw = value.strip()
    for fmt in _ACCEPTED_FORMATS:
        try:
            return datetime.strptime(raw, fmt).time()
        except ValueError:
            continue
    raise ValidationError(f"Invalid time format '{value}'. Expected HH:MM")


def format_hm(value: Union[datetime, time]) -> str:
    return value.strftime(HM_FORMAT)


def normalize_hm(value: str) -> str:
    """Round-trip a stored time ("09:00:00" or "9:00") to canonical HH:MM"""
    return format_hm(parse_wall_clock(value))


def at_wall_clock(target_date: date, wall_clock: time) -> datetime:
    return datetime.combine(target_date, wall_clock)


def start_of_day(value: Union[date, datetime]) -> datetime:
    if isinstance(value, datetime):
        value = value.date()
    return datetime.combine(value, time.min)


def next_occurrence(weekday: Weekday, now: Optional[datetime] = None) -> datetime:
    """
    Midnight of the next date falling on ``weekday``.

    Today counts as an occurrence, so the result is always within the next 0-6 days.
    """
    now = now or utc_now()
    days_until = (weekday.iso_index - now.weekday()) % 7
    return start_of_day(now + timedelta(days=days_until))


def rolling_week(now: Optional[datetime] = None) -> dict[Weekday, datetime]:
    """One concrete date per weekday covering the seven days starting today"""
    now = now or utc_now()
    return {day: next_occurrence(day, now) for day in Weekday.ordered()}
