"""
Slot generation

Turns one day's open window into the bookable start times that are still free.
Pure functions: the caller supplies "now" and the booked intervals.
"""

from datetime import date, datetime, timedelta
from typing import Iterable, Optional, Protocol, Union

from ...config import DEFAULT_TIME_GAP
from ...errors import ValidationError
from .time_calculator import at_wall_clock, format_hm, parse_wall_clock


class BookedInterval(Protocol):
    start_time: datetime
    end_time: datetime


Interval = Union[BookedInterval, tuple[datetime, datetime]]


def _bounds(interval: Interval) -> tuple[datetime, datetime]:
    if isinstance(interval, tuple):
        return interval
    return interval.start_time, interval.end_time


def overlaps(start: datetime, end: datetime, other_start: datetime, other_end: datetime) -> bool:
    """Half-open interval overlap: touching intervals do not overlap"""
    return start < other_end and end > other_start


def is_slot_available(slot_start: datetime, slot_end: datetime, booked: Iterable[Interval]) -> bool:
    for interval in booked:
        booked_start, booked_end = _bounds(interval)
        if overlaps(slot_start, slot_end, booked_start, booked_end):
            return False
    return True


def generate_available_slots(
    day_start: str,
    day_end: str,
    duration_minutes: int,
    time_gap_minutes: Optional[int],
    booked: Iterable[Interval],
    target_date: Union[date, datetime],
    now: datetime,
) -> list[str]:
    """
    Free slot start times (HH:MM, ascending) for ``target_date``.

    A slot is emitted when it fits before ``day_end``, does not start before
    ``now`` (starting exactly at ``now`` is allowed) and overlaps no booked
    interval. Candidate starts advance by the time gap, which defaults to
    DEFAULT_TIME_GAP when not positive.

    Raises:
        ValidationError: If a time string is malformed or the duration is not positive
    """
    if duration_minutes is None or duration_minutes <= 0:
        raise ValidationError(f"Invalid slot duration: {duration_minutes}")
    if not time_gap_minutes or time_gap_minutes <= 0:
        time_gap_minutes = DEFAULT_TIME_GAP

    if isinstance(target_date, datetime):
        target_date = target_date.date()

    open_at = at_wall_clock(target_date, parse_wall_clock(day_start))
    close_at = at_wall_clock(target_date, parse_wall_clock(day_end))
    duration = timedelta(minutes=duration_minutes)
    gap = timedelta(minutes=time_gap_minutes)
    booked = list(booked)

    slots: list[str] = []
    slot_start = open_at
    while slot_start < close_at:
        slot_end = slot_start + duration
        if slot_end > close_at:
            break
        if slot_start >= now and is_slot_available(slot_start, slot_end, booked):
            slots.append(format_hm(slot_start))
        slot_start += gap

    return slots
