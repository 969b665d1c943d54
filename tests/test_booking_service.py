"""Tests for creating, cancelling and listing meetings."""

import asyncio
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from slotbook.config import GoogleOAuthSettings
from slotbook.crypto import decrypt_token
from slotbook.database import UnitOfWorkResult, run_unit_of_work
from slotbook.domain.scheduling.booking_service import BookingService
from slotbook.domain.scheduling.reconciliation import (
    ORPHANED_REMOTE_EVENT,
    REMOTE_CREATE_INTERRUPTED,
    REMOTE_CREATE_UNCONFIRMED,
    REMOTE_DELETE_FAILED,
)
from slotbook.domain.scheduling.repository import (
    MeetingRepository,
    ReconciliationRepository,
    classify_meeting_integrity_error,
)
from slotbook.enums import EventLocationType, IntegrationAppType, MeetingStatus
from slotbook.errors import (
    AlreadyCancelledError,
    BookingTimeoutError,
    IntegrationError,
    IntegrationNotConnectedError,
    InternalError,
    NotFoundError,
    ProviderRequestError,
    RemoteDeletionError,
    SlotUnavailableError,
    TokenRefreshError,
    ValidationError,
)
from slotbook.models import Meeting
from slotbook.services.google_calendar_service import GoogleCalendarClient, TokenGrant

TEN_AM = datetime(2025, 1, 6, 10, 0)


@pytest.fixture
def service(db_session, provider, clock):
    return BookingService(db_session, provider, clock=clock)


@pytest.fixture
def gateway_service(db_session, clock):
    """Booking service over the real Google client, with a gateway answering HTML."""
    settings = GoogleOAuthSettings(
        client_id="mock_client_id",
        client_secret="mock_client_secret",
        redirect_uri="http://localhost:5173/integrations/google/callback",
    )
    transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>gateway</html>"))
    client = GoogleCalendarClient(settings, transport=transport, clock=clock)
    return BookingService(db_session, client, clock=clock)


class TestCreateBooking:
    @pytest.mark.asyncio
    async def test_books_slot_with_remote_event(
        self, db_session, service, provider, google_event, google_integration, booking_request
    ):
        meeting = await service.create_booking(booking_request(google_event))

        assert meeting.status == MeetingStatus.SCHEDULED.value
        assert meeting.start_time == TEN_AM
        assert meeting.end_time == TEN_AM + timedelta(hours=1)
        assert meeting.calendar_event_id == "remote-1"
        assert meeting.meet_link == "https://meet.google.com/abc-1"
        assert meeting.calendar_app_type == IntegrationAppType.GOOGLE_MEET_AND_CALENDAR.value

        access_token, spec = provider.created[0]
        assert access_token == "access-0"
        assert spec.summary == "Ada Guest - Intro Call"
        assert spec.attendees == ["ada@example.com", "olive@example.com"]
        assert spec.description == "Looking forward to it"
        assert spec.with_meet_link is True
        assert spec.request_id

    @pytest.mark.asyncio
    async def test_refreshed_token_is_persisted_during_booking(
        self, db_session, service, provider, google_event, google_integration, booking_request
    ):
        provider.refresh_result = TokenGrant("access-1", "refresh-1", TEN_AM, refreshed=True)

        await service.create_booking(booking_request(google_event))

        assert provider.created[0][0] == "access-1"
        db_session.expire_all()
        assert decrypt_token(google_integration.access_token) == "access-1"
        assert decrypt_token(google_integration.refresh_token) == "refresh-1"

    @pytest.mark.asyncio
    async def test_aware_times_are_stored_as_utc(
        self, service, google_event, google_integration, booking_request
    ):
        start = datetime(2025, 1, 6, 12, 0, tzinfo=timezone(timedelta(hours=2)))

        meeting = await service.create_booking(booking_request(google_event, start=start))

        assert meeting.start_time == TEN_AM

    @pytest.mark.asyncio
    async def test_zoom_event_needs_connection_but_no_remote_call(
        self, service, provider, make_event, connect_integration, booking_request
    ):
        zoom_event = make_event(location_type=EventLocationType.ZOOM_MEETING.value, duration=30, title="Zoom Chat")
        connect_integration(IntegrationAppType.ZOOM_MEETING, "zoom-access")

        meeting = await service.create_booking(booking_request(zoom_event))

        assert provider.created == []
        assert meeting.calendar_event_id is None
        assert meeting.meet_link is None
        assert meeting.calendar_app_type == IntegrationAppType.ZOOM_MEETING.value

    @pytest.mark.asyncio
    async def test_private_event_is_not_found(self, service, provider, make_event, google_integration, booking_request):
        private = make_event(is_private=True)

        with pytest.raises(NotFoundError):
            await service.create_booking(booking_request(private))
        assert provider.created == []

    @pytest.mark.asyncio
    async def test_missing_event_is_not_found(self, service, google_event, booking_request):
        request = booking_request(google_event, eventId=999)

        with pytest.raises(NotFoundError):
            await service.create_booking(request)

    @pytest.mark.asyncio
    async def test_interval_must_match_event_duration(self, service, google_event, google_integration, booking_request):
        with pytest.raises(ValidationError):
            await service.create_booking(booking_request(google_event, minutes=30))

    @pytest.mark.asyncio
    async def test_cannot_book_in_the_past(self, service, google_event, google_integration, booking_request):
        with pytest.raises(ValidationError):
            await service.create_booking(booking_request(google_event, start=datetime(2025, 1, 6, 7, 0)))

    @pytest.mark.asyncio
    async def test_unknown_location_type(self, service, make_event, google_integration, booking_request):
        event = make_event(location_type="CARRIER_PIGEON")

        with pytest.raises(ValidationError):
            await service.create_booking(booking_request(event))

    @pytest.mark.asyncio
    async def test_integration_not_connected(self, db_session, service, provider, google_event, booking_request):
        with pytest.raises(IntegrationNotConnectedError) as exc_info:
            await service.create_booking(booking_request(google_event))

        assert exc_info.value.status_code == 400
        assert exc_info.value.app_type == IntegrationAppType.GOOGLE_MEET_AND_CALENDAR.value
        assert provider.created == []
        assert db_session.query(Meeting).count() == 0

    @pytest.mark.asyncio
    async def test_disconnected_integration_counts_as_missing(
        self, db_session, service, google_event, google_integration, booking_request
    ):
        google_integration.is_connected = False
        db_session.commit()

        with pytest.raises(IntegrationNotConnectedError):
            await service.create_booking(booking_request(google_event))

    @pytest.mark.asyncio
    async def test_remote_failure_writes_nothing(
        self, db_session, service, provider, google_event, google_integration, booking_request
    ):
        provider.create_error = ProviderRequestError("Failed to create calendar event", status=500)

        with pytest.raises(ProviderRequestError):
            await service.create_booking(booking_request(google_event))

        assert db_session.query(Meeting).count() == 0
        assert ReconciliationRepository.list_open_tasks(db_session) == []

    @pytest.mark.asyncio
    async def test_token_refresh_failure_writes_nothing(
        self, db_session, service, provider, google_event, google_integration, booking_request
    ):
        provider.refresh_error = TokenRefreshError()

        with pytest.raises(TokenRefreshError):
            await service.create_booking(booking_request(google_event))

        assert provider.created == []
        assert db_session.query(Meeting).count() == 0

    @pytest.mark.asyncio
    async def test_taken_slot_is_rejected_before_remote_call(
        self, service, provider, google_event, google_integration, make_meeting, booking_request
    ):
        make_meeting(google_event, TEN_AM + timedelta(minutes=30))

        with pytest.raises(SlotUnavailableError):
            await service.create_booking(booking_request(google_event))
        assert provider.created == []

    @pytest.mark.asyncio
    async def test_adjacent_slot_is_bookable(
        self, service, google_event, google_integration, make_meeting, booking_request
    ):
        make_meeting(google_event, TEN_AM - timedelta(hours=1))

        meeting = await service.create_booking(booking_request(google_event))

        assert meeting.start_time == TEN_AM

    @pytest.mark.asyncio
    async def test_concurrent_bookings_for_same_slot(
        self, db_session, service, provider, google_event, google_integration, booking_request
    ):
        results = await asyncio.gather(
            service.create_booking(booking_request(google_event)),
            service.create_booking(booking_request(google_event, guestName="Bea Guest", guestEmail="bea@example.com")),
            return_exceptions=True,
        )

        booked = [r for r in results if isinstance(r, Meeting)]
        conflicts = [r for r in results if isinstance(r, SlotUnavailableError)]
        assert len(booked) == 1
        assert len(conflicts) == 1
        assert (
            db_session.query(Meeting).filter(Meeting.status == MeetingStatus.SCHEDULED.value).count() == 1
        )

        # The loser's remote event was already created and is now orphaned
        tasks = ReconciliationRepository.list_open_tasks(db_session)
        assert [t.kind for t in tasks] == [ORPHANED_REMOTE_EVENT]
        assert tasks[0].calendar_event_id in {"remote-1", "remote-2"}
        assert tasks[0].calendar_event_id != booked[0].calendar_event_id

    def test_storage_rejects_duplicate_scheduled_start(self, db_session, owner, google_event, make_meeting):
        make_meeting(google_event, TEN_AM)

        def work(session):
            duplicate = Meeting(
                user_id=owner.id,
                event_id=google_event.id,
                guest_name="Racer",
                guest_email="racer@example.com",
                start_time=TEN_AM,
                end_time=TEN_AM + timedelta(hours=1),
                status=MeetingStatus.SCHEDULED.value,
            )
            return UnitOfWorkResult.success(MeetingRepository.insert_meeting(session, duplicate))

        result = run_unit_of_work(db_session, work, on_integrity_error=classify_meeting_integrity_error)

        assert not result.ok
        assert isinstance(result.error, SlotUnavailableError)
        with pytest.raises(SlotUnavailableError):
            result.unwrap()
        assert db_session.query(Meeting).count() == 1

    def test_storage_rejects_overlapping_scheduled_meeting(self, db_session, owner, google_event, make_meeting):
        make_meeting(google_event, TEN_AM)

        def work(session):
            overlapping = Meeting(
                user_id=owner.id,
                event_id=google_event.id,
                guest_name="Racer",
                guest_email="racer@example.com",
                start_time=TEN_AM + timedelta(minutes=30),
                end_time=TEN_AM + timedelta(minutes=90),
                status=MeetingStatus.SCHEDULED.value,
            )
            return UnitOfWorkResult.success(MeetingRepository.insert_meeting(session, overlapping))

        result = run_unit_of_work(db_session, work, on_integrity_error=classify_meeting_integrity_error)

        assert isinstance(result.error, SlotUnavailableError)
        assert db_session.query(Meeting).count() == 1

    @pytest.mark.asyncio
    async def test_cancelled_slot_can_be_rebooked(
        self, db_session, service, google_event, google_integration, make_meeting, booking_request
    ):
        make_meeting(google_event, TEN_AM, status=MeetingStatus.CANCELLED)

        meeting = await service.create_booking(booking_request(google_event))

        assert meeting.status == MeetingStatus.SCHEDULED.value
        assert db_session.query(Meeting).count() == 2

    @pytest.mark.asyncio
    async def test_deadline_interrupting_remote_create(
        self, db_session, provider, clock, google_event, google_integration, booking_request
    ):
        provider.create_delay = 1.0
        service = BookingService(db_session, provider, deadline_seconds=0.05, clock=clock)

        with pytest.raises(BookingTimeoutError):
            await service.create_booking(booking_request(google_event))

        assert db_session.query(Meeting).count() == 0
        tasks = ReconciliationRepository.list_open_tasks(db_session)
        assert [t.kind for t in tasks] == [REMOTE_CREATE_INTERRUPTED]

    @pytest.mark.asyncio
    async def test_unreadable_create_response_is_recorded(
        self, db_session, gateway_service, google_event, google_integration, booking_request
    ):
        with pytest.raises(ProviderRequestError) as exc_info:
            await gateway_service.create_booking(booking_request(google_event))

        assert isinstance(exc_info.value, IntegrationError)
        assert db_session.query(Meeting).count() == 0
        tasks = ReconciliationRepository.list_open_tasks(db_session)
        assert [t.kind for t in tasks] == [REMOTE_CREATE_UNCONFIRMED]

    @pytest.mark.asyncio
    async def test_unreadable_refresh_response_is_an_integration_error(
        self, db_session, gateway_service, google_event, google_integration, booking_request
    ):
        google_integration.expiry_date = TEN_AM - timedelta(hours=4)
        db_session.commit()

        with pytest.raises(TokenRefreshError):
            await gateway_service.create_booking(booking_request(google_event))

        assert db_session.query(Meeting).count() == 0
        assert ReconciliationRepository.list_open_tasks(db_session) == []


class TestCancelMeeting:
    @pytest.mark.asyncio
    async def test_cancels_and_deletes_remote_event(
        self, db_session, service, provider, google_event, google_integration, make_meeting
    ):
        meeting = make_meeting(google_event, TEN_AM, calendar_event_id="evt-42")

        cancelled = await service.cancel_meeting(meeting.id)

        assert cancelled.status == MeetingStatus.CANCELLED.value
        assert provider.deleted == [("access-0", "evt-42")]
        assert ReconciliationRepository.list_open_tasks(db_session) == []

    @pytest.mark.asyncio
    async def test_meeting_without_remote_event(self, service, provider, google_event, make_meeting):
        meeting = make_meeting(google_event, TEN_AM)

        cancelled = await service.cancel_meeting(meeting.id)

        assert cancelled.status == MeetingStatus.CANCELLED.value
        assert provider.deleted == []

    @pytest.mark.asyncio
    async def test_already_cancelled_is_a_conflict(self, service, google_event, make_meeting):
        meeting = make_meeting(google_event, TEN_AM, status=MeetingStatus.CANCELLED)

        with pytest.raises(AlreadyCancelledError):
            await service.cancel_meeting(meeting.id)

    @pytest.mark.asyncio
    async def test_second_cancel_is_a_conflict(self, service, google_event, make_meeting):
        meeting = make_meeting(google_event, TEN_AM)

        await service.cancel_meeting(meeting.id)
        with pytest.raises(AlreadyCancelledError):
            await service.cancel_meeting(meeting.id)

    @pytest.mark.asyncio
    async def test_missing_meeting(self, service):
        with pytest.raises(NotFoundError):
            await service.cancel_meeting(12345)

    @pytest.mark.asyncio
    async def test_remote_delete_failure_does_not_block_cancel(
        self, db_session, service, provider, google_event, google_integration, make_meeting
    ):
        meeting = make_meeting(google_event, TEN_AM, calendar_event_id="evt-42")
        provider.delete_error = RemoteDeletionError("Failed to delete calendar event", status=500)

        cancelled = await service.cancel_meeting(meeting.id)

        assert cancelled.status == MeetingStatus.CANCELLED.value
        tasks = ReconciliationRepository.list_open_tasks(db_session)
        assert len(tasks) == 1
        assert tasks[0].kind == REMOTE_DELETE_FAILED
        assert tasks[0].meeting_id == meeting.id
        assert tasks[0].calendar_event_id == "evt-42"

    @pytest.mark.asyncio
    async def test_token_failure_does_not_block_cancel(
        self, db_session, service, provider, google_event, google_integration, make_meeting
    ):
        meeting = make_meeting(google_event, TEN_AM, calendar_event_id="evt-42")
        provider.refresh_error = TokenRefreshError()

        cancelled = await service.cancel_meeting(meeting.id)

        assert cancelled.status == MeetingStatus.CANCELLED.value
        assert provider.deleted == []
        assert [t.kind for t in ReconciliationRepository.list_open_tasks(db_session)] == [REMOTE_DELETE_FAILED]

    @pytest.mark.asyncio
    async def test_missing_integration_does_not_block_cancel(
        self, db_session, service, provider, google_event, make_meeting
    ):
        meeting = make_meeting(google_event, TEN_AM, calendar_event_id="evt-42")

        cancelled = await service.cancel_meeting(meeting.id)

        assert cancelled.status == MeetingStatus.CANCELLED.value
        assert [t.kind for t in ReconciliationRepository.list_open_tasks(db_session)] == [REMOTE_DELETE_FAILED]

    @pytest.mark.asyncio
    async def test_unreadable_refresh_response_does_not_block_cancel(
        self, db_session, gateway_service, google_event, google_integration, make_meeting
    ):
        google_integration.expiry_date = TEN_AM - timedelta(hours=4)
        db_session.commit()
        meeting = make_meeting(google_event, TEN_AM, calendar_event_id="evt-42")

        cancelled = await gateway_service.cancel_meeting(meeting.id)

        assert cancelled.status == MeetingStatus.CANCELLED.value
        tasks = ReconciliationRepository.list_open_tasks(db_session)
        assert [t.kind for t in tasks] == [REMOTE_DELETE_FAILED]
        assert tasks[0].detail.startswith(TokenRefreshError.code)

    @pytest.mark.asyncio
    async def test_token_storage_failure_does_not_block_cancel(
        self, db_session, service, google_event, google_integration, make_meeting, monkeypatch
    ):
        async def failing_obtain(db, integration, provider):
            raise InternalError("token persist failed")

        monkeypatch.setattr("slotbook.domain.scheduling.booking_service.obtain_access_token", failing_obtain)
        meeting = make_meeting(google_event, TEN_AM, calendar_event_id="evt-42")

        cancelled = await service.cancel_meeting(meeting.id)

        assert cancelled.status == MeetingStatus.CANCELLED.value
        assert [t.kind for t in ReconciliationRepository.list_open_tasks(db_session)] == [REMOTE_DELETE_FAILED]

    @pytest.mark.asyncio
    async def test_unknown_app_type_does_not_block_cancel(
        self, db_session, service, provider, google_event, make_meeting
    ):
        meeting = make_meeting(google_event, TEN_AM, calendar_event_id="evt-42")
        meeting.calendar_app_type = "CARRIER_PIGEON"
        db_session.commit()

        cancelled = await service.cancel_meeting(meeting.id)

        assert cancelled.status == MeetingStatus.CANCELLED.value
        assert provider.deleted == []
        tasks = ReconciliationRepository.list_open_tasks(db_session)
        assert [t.kind for t in tasks] == [REMOTE_DELETE_FAILED]
        assert tasks[0].app_type == "CARRIER_PIGEON"

    def test_status_update_reports_zero_rows_when_state_changed(self, db_session, google_event, make_meeting):
        meeting = make_meeting(google_event, TEN_AM, status=MeetingStatus.CANCELLED)

        rows = MeetingRepository.update_meeting_status(
            db_session, meeting.id, MeetingStatus.CANCELLED, expected_status=MeetingStatus.SCHEDULED
        )

        assert rows == 0


class TestListMeetings:
    @pytest.fixture
    def meetings(self, google_event, make_meeting):
        return {
            "past": make_meeting(google_event, datetime(2025, 1, 3, 10, 0)),
            "later": make_meeting(google_event, datetime(2025, 1, 8, 10, 0)),
            "soon": make_meeting(google_event, datetime(2025, 1, 6, 10, 0)),
            "cancelled": make_meeting(google_event, datetime(2025, 1, 7, 10, 0), status=MeetingStatus.CANCELLED),
        }

    def test_upcoming_is_default(self, service, owner, meetings):
        upcoming = service.list_meetings(owner.id)

        assert [m.id for m in upcoming] == [meetings["soon"].id, meetings["later"].id]

    @pytest.mark.parametrize("raw", ["UPCOMING", "upcoming", "", "bogus"])
    def test_unknown_filter_falls_back_to_upcoming(self, service, owner, meetings, raw):
        assert len(service.list_meetings(owner.id, raw)) == 2

    def test_past(self, service, owner, meetings):
        assert [m.id for m in service.list_meetings(owner.id, "PAST")] == [meetings["past"].id]

    def test_cancelled(self, service, owner, meetings):
        assert [m.id for m in service.list_meetings(owner.id, "CANCELLED")] == [meetings["cancelled"].id]
