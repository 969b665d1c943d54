"""Availability service - weekly rules and public slot listing"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.orm import Session

from ...config import DEFAULT_TIME_GAP
from ...database import UnitOfWorkResult, run_unit_of_work
from ...enums import Weekday
from ...errors import AvailabilityNotConfiguredError, NotFoundError, ValidationError
from ...models import Availability, DayAvailability, Event
from .repository import AvailabilityRepository, EventRepository, MeetingRepository
from .schemas import AvailabilityResponse, DailySlots, DayRule, UpdateAvailabilityRequest
from .slot_generator import generate_available_slots, overlaps
from .time_calculator import normalize_hm, parse_wall_clock, rolling_week, utc_now

logger = logging.getLogger(__name__)


def create_default_availability(db: Session, user_id: int) -> Availability:
    """Seed a new user's rules inside the registration unit of work"""
    return AvailabilityRepository.create_default_rules(db, user_id, DEFAULT_TIME_GAP)


def _to_day_rule(rule: DayAvailability) -> DayRule:
    return DayRule(
        day=Weekday(rule.day),
        startTime=normalize_hm(rule.start_time),
        endTime=normalize_hm(rule.end_time),
        isAvailable=rule.is_available,
    )


class AvailabilityService:
    """Service layer for availability business logic"""

    def __init__(self, db: Session, clock: Callable[[], datetime] = utc_now):
        self.db = db
        self.clock = clock
        self.repo = AvailabilityRepository()

    def get_user_availability(self, user_id: int) -> AvailabilityResponse:
        availability = self.repo.get_availability(self.db, user_id)
        if not availability or not availability.days:
            raise NotFoundError("User availability")

        days = sorted(availability.days, key=lambda d: Weekday.ordered().index(Weekday(d.day)))
        return AvailabilityResponse(
            timeGap=availability.time_gap,
            days=[_to_day_rule(d) for d in days],
        )

    def update_availability(self, user_id: int, data: UpdateAvailabilityRequest) -> AvailabilityResponse:
        """Replace the time gap and all seven day rules as one unit"""
        self._validate_rules(data.days)

        days = [
            {
                "day": rule.day,
                "start_time": rule.startTime,
                "end_time": rule.endTime,
                "is_available": rule.isAvailable,
            }
            for rule in data.days
        ]

        def work(session: Session) -> UnitOfWorkResult[Availability]:
            return UnitOfWorkResult.success(
                self.repo.replace_weekly_rules(session, user_id, data.timeGap, days)
            )

        run_unit_of_work(self.db, work).unwrap()
        logger.info(f"✅ Availability updated for user {user_id}")
        return self.get_user_availability(user_id)

    @staticmethod
    def _validate_rules(rules: list[DayRule]) -> None:
        seen = [rule.day for rule in rules]
        if len(set(seen)) != len(seen):
            raise ValidationError("Each weekday may only appear once")
        missing = [day.value for day in Weekday.ordered() if day not in seen]
        if missing:
            raise ValidationError(f"Missing availability for: {', '.join(missing)}")

        for rule in rules:
            start = parse_wall_clock(rule.startTime)
            end = parse_wall_clock(rule.endTime)
            if rule.isAvailable and start >= end:
                raise ValidationError(
                    f"invalid time range for day {rule.day.value}: start='{rule.startTime}', end='{rule.endTime}'"
                )

    def get_public_event_availability(
        self, event_id: int, now: Optional[datetime] = None
    ) -> list[DailySlots]:
        """
        Free slots for each weekday over the coming week for a public event.

        Raises:
            NotFoundError: If the event does not exist or is private
            AvailabilityNotConfiguredError: If the owner has no weekly rules
        """
        now = now or self.clock()

        event: Optional[Event] = EventRepository.get_public_event(self.db, event_id)
        if not event:
            raise NotFoundError("Public event")

        availability = self.repo.get_availability(self.db, event.user_id)
        if not availability or not availability.days:
            raise AvailabilityNotConfiguredError()

        rules = {Weekday(d.day): d for d in availability.days}
        dates = rolling_week(now)
        range_start = min(dates.values())
        range_end = max(dates.values()) + timedelta(days=1)

        # One query for the whole window, filtered per day below
        meetings = MeetingRepository.get_meetings_overlapping(
            self.db, event.user_id, range_start, range_end
        )

        result: list[DailySlots] = []
        for day in Weekday.ordered():
            target_date = dates[day]
            rule = rules.get(day)
            daily = DailySlots(day=day, slots=[], isAvailable=bool(rule and rule.is_available))

            if daily.isAvailable:
                day_start, day_end = target_date, target_date + timedelta(days=1)
                meetings_for_date = [
                    m for m in meetings if overlaps(m.start_time, m.end_time, day_start, day_end)
                ]
                try:
                    daily.slots = generate_available_slots(
                        rule.start_time,
                        rule.end_time,
                        event.duration,
                        availability.time_gap,
                        meetings_for_date,
                        target_date,
                        now,
                    )
                except ValidationError as e:
                    logger.error(
                        f"❌ Error generating slots for {day.value} on {target_date.date()}: {e.message}"
                    )

            result.append(daily)

        return result
