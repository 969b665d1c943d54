"""Scheduling repository - Database operations for availability, events, meetings and credentials"""

import logging
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload, selectinload

from ...crypto import encrypt_token
from ...enums import (
    IntegrationAppType,
    MeetingFilter,
    MeetingStatus,
    Weekday,
)
from ...errors import AppError, InternalError, SlotUnavailableError
from ...models import (
    MEETING_EXCLUSION_CONSTRAINT,
    Availability,
    DayAvailability,
    Event,
    Integration,
    Meeting,
    ReconciliationTask,
)
from .time_calculator import utc_now

logger = logging.getLogger(__name__)

DEFAULT_DAY_START = "09:00"
DEFAULT_DAY_END = "17:00"
WEEKEND = frozenset({Weekday.SATURDAY, Weekday.SUNDAY})

# PostgreSQL SQLSTATEs raised by the overlap guards
EXCLUSION_VIOLATION = "23P01"
UNIQUE_VIOLATION = "23505"


class AvailabilityRepository:
    """Repository for weekly availability rules"""

    @staticmethod
    def get_availability(db: Session, user_id: int) -> Optional[Availability]:
        """Availability row with its day rules loaded"""
        return (
            db.query(Availability)
            .options(selectinload(Availability.days))
            .filter(Availability.user_id == user_id)
            .first()
        )

    @staticmethod
    def replace_weekly_rules(db: Session, user_id: int, time_gap: int, days: Iterable[dict]) -> Availability:
        """
        Replace all day rules for a user. Creates the availability row when missing.
        Does not commit; runs inside the caller's unit of work.
        """
        availability = db.query(Availability).filter(Availability.user_id == user_id).first()
        if availability is None:
            availability = Availability(user_id=user_id, time_gap=time_gap)
            db.add(availability)
            db.flush()
        else:
            availability.time_gap = time_gap

        db.query(DayAvailability).filter(
            DayAvailability.availability_id == availability.id
        ).delete(synchronize_session="fetch")
        db.flush()

        for day in days:
            db.add(
                DayAvailability(
                    availability_id=availability.id,
                    day=Weekday(day["day"]).value,
                    start_time=day["start_time"],
                    end_time=day["end_time"],
                    is_available=day["is_available"],
                )
            )
        db.flush()
        db.expire(availability)
        return availability

    @staticmethod
    def create_default_rules(db: Session, user_id: int, time_gap: int) -> Availability:
        """Weekdays 09:00-17:00 available, weekends unavailable"""
        days = [
            {
                "day": day,
                "start_time": DEFAULT_DAY_START,
                "end_time": DEFAULT_DAY_END,
                "is_available": day not in WEEKEND,
            }
            for day in Weekday.ordered()
        ]
        return AvailabilityRepository.replace_weekly_rules(db, user_id, time_gap, days)


class EventRepository:
    @staticmethod
    def get_public_event(db: Session, event_id: int) -> Optional[Event]:
        """Event by ID, only if it is publicly bookable"""
        return (
            db.query(Event)
            .options(joinedload(Event.user))
            .filter(Event.id == event_id, Event.is_private.is_(False))
            .first()
        )


class MeetingRepository:
    """Repository for meeting database operations"""

    @staticmethod
    def get_meeting(db: Session, meeting_id: int) -> Optional[Meeting]:
        return db.query(Meeting).filter(Meeting.id == meeting_id).first()

    @staticmethod
    def get_meetings_overlapping(
        db: Session, user_id: int, range_start: datetime, range_end: datetime
    ) -> list[Meeting]:
        """Scheduled meetings for an owner intersecting [range_start, range_end)"""
        return (
            db.query(Meeting)
            .filter(
                Meeting.user_id == user_id,
                Meeting.status == MeetingStatus.SCHEDULED.value,
                Meeting.start_time < range_end,
                Meeting.end_time > range_start,
            )
            .order_by(Meeting.start_time.asc())
            .all()
        )

    @staticmethod
    def has_overlap(db: Session, user_id: int, start: datetime, end: datetime) -> bool:
        return bool(MeetingRepository.get_meetings_overlapping(db, user_id, start, end))

    @staticmethod
    def insert_meeting(db: Session, meeting: Meeting) -> Meeting:
        """Add and flush so storage constraints fire inside the caller's transaction"""
        db.add(meeting)
        db.flush()
        return meeting

    @staticmethod
    def update_meeting_status(
        db: Session,
        meeting_id: int,
        status: MeetingStatus,
        expected_status: Optional[MeetingStatus] = None,
    ) -> int:
        """Returns rows affected; zero means the meeting vanished or changed underneath us"""
        query = db.query(Meeting).filter(Meeting.id == meeting_id)
        if expected_status is not None:
            query = query.filter(Meeting.status == expected_status.value)
        return query.update(
            {Meeting.status: status.value, Meeting.updated_at: utc_now()},
            synchronize_session="fetch",
        )

    @staticmethod
    def list_meetings(db: Session, user_id: int, meeting_filter: MeetingFilter, now: datetime) -> list[Meeting]:
        query = db.query(Meeting).options(joinedload(Meeting.event)).filter(Meeting.user_id == user_id)

        if meeting_filter == MeetingFilter.CANCELLED:
            query = query.filter(Meeting.status == MeetingStatus.CANCELLED.value)
        elif meeting_filter == MeetingFilter.PAST:
            query = query.filter(
                Meeting.status == MeetingStatus.SCHEDULED.value, Meeting.start_time < now
            )
        else:
            query = query.filter(
                Meeting.status == MeetingStatus.SCHEDULED.value, Meeting.start_time > now
            )

        return query.order_by(Meeting.start_time.asc()).all()


def classify_meeting_integrity_error(error: IntegrityError) -> AppError:
    """Map overlap-guard violations to a slot conflict; anything else is internal"""
    orig = getattr(error, "orig", None)
    pgcode = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    message = str(orig or error)

    if pgcode in (EXCLUSION_VIOLATION, UNIQUE_VIOLATION):
        return SlotUnavailableError()
    if MEETING_EXCLUSION_CONSTRAINT in message or "uq_meetings_owner_start_scheduled" in message:
        return SlotUnavailableError()
    if "UNIQUE constraint failed: meetings." in message:
        return SlotUnavailableError()

    logger.error(f"❌ Unexpected integrity error inserting meeting: {message}")
    return InternalError("integrity error inserting meeting", cause=error)


class IntegrationRepository:
    """Repository for OAuth credentials"""

    @staticmethod
    def get_credential(db: Session, user_id: int, app_type: IntegrationAppType) -> Optional[Integration]:
        """Connected credential for (owner, app type)"""
        return (
            db.query(Integration)
            .options(joinedload(Integration.user))
            .filter(
                Integration.user_id == user_id,
                Integration.app_type == app_type.value,
                Integration.is_connected.is_(True),
            )
            .first()
        )

    @staticmethod
    def save_credential(
        db: Session,
        integration: Integration,
        access_token: str,
        refresh_token: Optional[str],
        expiry: Optional[datetime],
    ) -> Integration:
        """Store refreshed tokens. A missing refresh token keeps the stored one."""
        integration.access_token = encrypt_token(access_token)
        if refresh_token:
            integration.refresh_token = encrypt_token(refresh_token)
        if expiry is not None:
            integration.expiry_date = expiry
        db.flush()
        return integration


class ReconciliationRepository:
    @staticmethod
    def add_task(
        db: Session,
        kind: str,
        *,
        user_id: Optional[int] = None,
        meeting_id: Optional[int] = None,
        app_type: Optional[str] = None,
        calendar_event_id: Optional[str] = None,
        detail: Optional[str] = None,
    ) -> ReconciliationTask:
        task = ReconciliationTask(
            kind=kind,
            user_id=user_id,
            meeting_id=meeting_id,
            app_type=app_type,
            calendar_event_id=calendar_event_id,
            detail=detail,
        )
        db.add(task)
        db.flush()
        return task

    @staticmethod
    def list_open_tasks(db: Session) -> list[ReconciliationTask]:
        return (
            db.query(ReconciliationTask)
            .filter(ReconciliationTask.resolved.is_(False))
            .order_by(ReconciliationTask.id.asc())
            .all()
        )
