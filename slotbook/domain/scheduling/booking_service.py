"""
Booking service - create and cancel meetings

The remote calendar event is created before the local insert. If the insert then
fails (or the request is cut off mid-create) the remote event is left behind and
recorded for reconciliation; it is never cleaned up here.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.orm import Session

from ...config import BOOKING_DEADLINE_SECONDS
from ...database import UnitOfWorkResult, run_unit_of_work
from ...enums import (
    LOCATION_TO_APP_TYPE,
    REMOTE_CALENDAR_LOCATIONS,
    EventLocationType,
    IntegrationAppType,
    MeetingFilter,
    MeetingStatus,
)
from ...errors import (
    AlreadyCancelledError,
    AppError,
    BookingTimeoutError,
    IntegrationNotConnectedError,
    NotFoundError,
    ProviderRequestError,
    SlotUnavailableError,
    ValidationError,
)
from ...models import Event, Meeting
from ...services.google_calendar_service import CalendarProvider, RemoteEvent, RemoteEventSpec
from .reconciliation import (
    ORPHANED_REMOTE_EVENT,
    REMOTE_CREATE_INTERRUPTED,
    REMOTE_CREATE_UNCONFIRMED,
    REMOTE_DELETE_FAILED,
    record_reconciliation,
)
from .repository import (
    EventRepository,
    IntegrationRepository,
    MeetingRepository,
    classify_meeting_integrity_error,
)
from .schemas import CreateBookingRequest
from .time_calculator import to_naive_utc, utc_now
from .token_service import obtain_access_token

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BookingService:
    """Service layer for meeting booking and cancellation"""

    def __init__(
        self,
        db: Session,
        provider: CalendarProvider,
        *,
        deadline_seconds: float = BOOKING_DEADLINE_SECONDS,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = db
        self.provider = provider
        self.deadline_seconds = deadline_seconds
        self.clock = clock

    async def _with_deadline(self, operation: Awaitable[T], action: str) -> T:
        try:
            return await asyncio.wait_for(operation, timeout=self.deadline_seconds)
        except asyncio.TimeoutError as e:
            logger.error(f"❌ {action} exceeded {self.deadline_seconds}s deadline")
            raise BookingTimeoutError(cause=e) from e

    async def create_booking(self, data: CreateBookingRequest) -> Meeting:
        """
        Reserve a slot on a public event.

        Raises:
            NotFoundError: Event missing or private
            ValidationError: Interval does not match the event or lies in the past
            IntegrationNotConnectedError: Owner has no connected credential for the location
            TokenRefreshError / ProviderRequestError: Remote calendar failed; no meeting was stored
            SlotUnavailableError: The slot was taken
            BookingTimeoutError: The whole operation exceeded the deadline
        """
        return await self._with_deadline(self._create_booking(data), "Booking creation")

    async def _create_booking(self, data: CreateBookingRequest) -> Meeting:
        start_time = to_naive_utc(data.startTime)
        end_time = to_naive_utc(data.endTime)

        event: Optional[Event] = EventRepository.get_public_event(self.db, data.eventId)
        if not event:
            raise NotFoundError("Public event")

        self._validate_interval(event, start_time, end_time)

        try:
            location = EventLocationType(event.location_type)
        except ValueError:
            raise ValidationError(f"Unsupported event location type: {event.location_type}")
        app_type = LOCATION_TO_APP_TYPE[location]

        integration = IntegrationRepository.get_credential(self.db, event.user_id, app_type)
        if not integration:
            logger.warning(f"⚠️ Owner {event.user_id} has no connected {app_type.value} integration")
            raise IntegrationNotConnectedError(app_type.value)

        # Advisory only; the storage constraint is authoritative
        if MeetingRepository.has_overlap(self.db, event.user_id, start_time, end_time):
            raise SlotUnavailableError()

        remote: Optional[RemoteEvent] = None
        if location in REMOTE_CALENDAR_LOCATIONS:
            access_token = await obtain_access_token(self.db, integration, self.provider)
            spec = RemoteEventSpec(
                summary=f"{data.guestName} - {event.title}",
                start=start_time,
                end=end_time,
                attendees=[data.guestEmail, event.user.email],
                description=data.additionalInfo,
            )
            try:
                remote = await self.provider.create_event(access_token, spec)
            except asyncio.CancelledError:
                record_reconciliation(
                    self.db,
                    REMOTE_CREATE_INTERRUPTED,
                    user_id=event.user_id,
                    app_type=app_type.value,
                    detail=f"request {spec.request_id} for {start_time.isoformat()} interrupted",
                )
                raise
            except ProviderRequestError as e:
                # A 2xx that could not be read may still have created the event
                if e.status in (200, 201):
                    record_reconciliation(
                        self.db,
                        REMOTE_CREATE_UNCONFIRMED,
                        user_id=event.user_id,
                        app_type=app_type.value,
                        detail=f"request {spec.request_id} for {start_time.isoformat()}: {e.message}",
                    )
                raise

        def work(session: Session) -> UnitOfWorkResult[Meeting]:
            if MeetingRepository.has_overlap(session, event.user_id, start_time, end_time):
                return UnitOfWorkResult.failure(SlotUnavailableError())
            meeting = Meeting(
                user_id=event.user_id,
                event_id=event.id,
                guest_name=data.guestName,
                guest_email=data.guestEmail,
                additional_info=data.additionalInfo,
                start_time=start_time,
                end_time=end_time,
                meet_link=remote.meet_link if remote else None,
                calendar_event_id=remote.event_id if remote else None,
                calendar_app_type=app_type.value,
                status=MeetingStatus.SCHEDULED.value,
            )
            return UnitOfWorkResult.success(MeetingRepository.insert_meeting(session, meeting))

        result = run_unit_of_work(self.db, work, on_integrity_error=classify_meeting_integrity_error)
        if not result.ok:
            if remote:
                record_reconciliation(
                    self.db,
                    ORPHANED_REMOTE_EVENT,
                    user_id=event.user_id,
                    app_type=app_type.value,
                    calendar_event_id=remote.event_id,
                    detail=f"local insert failed: {result.error.code}",
                )
            raise result.error

        meeting = result.value
        logger.info(f"📅 Meeting {meeting.id} booked for event {event.id} at {start_time.isoformat()}")
        return meeting

    def _validate_interval(self, event: Event, start_time: datetime, end_time: datetime) -> None:
        if end_time <= start_time:
            raise ValidationError("endTime must be after startTime")
        if end_time - start_time != timedelta(minutes=event.duration):
            raise ValidationError(f"Meeting must last exactly {event.duration} minutes")
        if start_time < self.clock():
            raise ValidationError("Cannot book a meeting in the past")

    async def cancel_meeting(self, meeting_id: int) -> Meeting:
        """
        Cancel a scheduled meeting. Remote deletion is best effort; the local
        status change always proceeds.

        Raises:
            NotFoundError: Meeting missing, or changed underneath the update
            AlreadyCancelledError: Meeting was already cancelled
            BookingTimeoutError: The whole operation exceeded the deadline
        """
        return await self._with_deadline(self._cancel_meeting(meeting_id), "Meeting cancellation")

    async def _cancel_meeting(self, meeting_id: int) -> Meeting:
        meeting = MeetingRepository.get_meeting(self.db, meeting_id)
        if not meeting:
            raise NotFoundError("Meeting")
        if meeting.status == MeetingStatus.CANCELLED.value:
            raise AlreadyCancelledError()

        if meeting.calendar_event_id and meeting.calendar_app_type:
            await self._delete_remote_event(meeting)

        def work(session: Session) -> UnitOfWorkResult[int]:
            rows = MeetingRepository.update_meeting_status(
                session, meeting_id, MeetingStatus.CANCELLED, expected_status=MeetingStatus.SCHEDULED
            )
            if rows == 0:
                return UnitOfWorkResult.failure(NotFoundError("Meeting (for update)"))
            return UnitOfWorkResult.success(rows)

        run_unit_of_work(self.db, work).unwrap()
        self.db.refresh(meeting)
        logger.info(f"✅ Meeting {meeting_id} cancelled")
        return meeting

    async def _delete_remote_event(self, meeting: Meeting) -> None:
        try:
            app_type = IntegrationAppType(meeting.calendar_app_type)
            integration = IntegrationRepository.get_credential(self.db, meeting.user_id, app_type)
            if not integration:
                raise IntegrationNotConnectedError(app_type.value)
            access_token = await obtain_access_token(self.db, integration, self.provider)
            await self.provider.delete_event(access_token, meeting.calendar_event_id)
        except Exception as e:
            if isinstance(e, AppError):
                detail = f"{e.code}: {e.message}"
            else:
                detail = f"{type(e).__name__}: {e}"
            logger.warning(f"⚠️ Remote deletion failed for meeting {meeting.id}: {detail}")
            record_reconciliation(
                self.db,
                REMOTE_DELETE_FAILED,
                user_id=meeting.user_id,
                meeting_id=meeting.id,
                app_type=meeting.calendar_app_type,
                calendar_event_id=meeting.calendar_event_id,
                detail=detail,
            )

    def list_meetings(self, owner_id: int, meeting_filter: Optional[str] = None) -> list[Meeting]:
        """Owner's meetings for UPCOMING (default), PAST or CANCELLED, by start time"""
        return MeetingRepository.list_meetings(
            self.db, owner_id, MeetingFilter.parse(meeting_filter), self.clock()
        )
