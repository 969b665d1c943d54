"""Pytest fixtures for scheduling tests."""

import asyncio
import logging
import os
from datetime import datetime, timedelta
from typing import Optional

os.environ.setdefault("SECRET_KEY", "test-secret-key")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from slotbook.database import Base
from slotbook.domain.scheduling.availability_service import create_default_availability
from slotbook.domain.scheduling.repository import IntegrationRepository
from slotbook.domain.scheduling.schemas import CreateBookingRequest
from slotbook.enums import (
    APP_TYPE_TO_CATEGORY,
    APP_TYPE_TO_PROVIDER,
    EventLocationType,
    IntegrationAppType,
    MeetingStatus,
)
from slotbook.models import Event, Integration, Meeting, User
from slotbook.services.google_calendar_service import RemoteEvent, RemoteEventSpec, TokenGrant

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Monday
FIXED_NOW = datetime(2025, 1, 6, 8, 0)


class FakeCalendarProvider:
    """In-memory calendar provider that records every call."""

    def __init__(self):
        self.refresh_calls: list[tuple] = []
        self.created: list[tuple[str, RemoteEventSpec]] = []
        self.deleted: list[tuple[str, str]] = []
        self.refresh_result: Optional[TokenGrant] = None
        self.refresh_error: Optional[Exception] = None
        self.create_error: Optional[Exception] = None
        self.delete_error: Optional[Exception] = None
        self.create_delay = 0.0
        self._counter = 0

    async def refresh_token(self, access_token, refresh_token, expiry):
        self.refresh_calls.append((access_token, refresh_token, expiry))
        if self.refresh_error:
            raise self.refresh_error
        if self.refresh_result:
            return self.refresh_result
        return TokenGrant(access_token=access_token, expiry=expiry)

    async def create_event(self, access_token, spec):
        self.created.append((access_token, spec))
        await asyncio.sleep(self.create_delay)
        if self.create_error:
            raise self.create_error
        self._counter += 1
        return RemoteEvent(
            event_id=f"remote-{self._counter}",
            meet_link=f"https://meet.google.com/abc-{self._counter}",
        )

    async def delete_event(self, access_token, event_id):
        self.deleted.append((access_token, event_id))
        if self.delete_error:
            raise self.delete_error


@pytest.fixture
def fixed_now():
    return FIXED_NOW


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def provider():
    return FakeCalendarProvider()


@pytest.fixture
def owner(db_session):
    user = User(name="Olive Owner", username="olive", email="olive@example.com")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def owner_availability(db_session, owner):
    availability = create_default_availability(db_session, owner.id)
    db_session.commit()
    return availability


@pytest.fixture
def make_event(db_session, owner):
    def _make(
        location_type=EventLocationType.GOOGLE_MEET_AND_CALENDAR.value,
        duration=60,
        is_private=False,
        title="Intro Call",
    ):
        event = Event(
            user_id=owner.id,
            title=title,
            duration=duration,
            slug=title.lower().replace(" ", "-"),
            is_private=is_private,
            location_type=location_type,
        )
        db_session.add(event)
        db_session.commit()
        return event

    return _make


@pytest.fixture
def google_event(make_event):
    return make_event()


@pytest.fixture
def connect_integration(db_session, owner):
    """Store a connected credential for the owner, as an OAuth callback would."""

    def _connect(app_type, access_token, refresh_token=None, expiry=None):
        integration = Integration(
            user_id=owner.id,
            provider=APP_TYPE_TO_PROVIDER[app_type].value,
            category=APP_TYPE_TO_CATEGORY[app_type].value,
            app_type=app_type.value,
            is_connected=True,
        )
        db_session.add(integration)
        IntegrationRepository.save_credential(db_session, integration, access_token, refresh_token, expiry)
        db_session.commit()
        return integration

    return _connect


@pytest.fixture
def google_integration(connect_integration):
    return connect_integration(
        IntegrationAppType.GOOGLE_MEET_AND_CALENDAR,
        "access-0",
        "refresh-0",
        FIXED_NOW + timedelta(hours=1),
    )


@pytest.fixture
def make_meeting(db_session, owner):
    def _make(event, start, minutes=60, status=MeetingStatus.SCHEDULED, calendar_event_id=None):
        meeting = Meeting(
            user_id=owner.id,
            event_id=event.id,
            guest_name="Existing Guest",
            guest_email="existing@example.com",
            start_time=start,
            end_time=start + timedelta(minutes=minutes),
            calendar_event_id=calendar_event_id,
            calendar_app_type=IntegrationAppType.GOOGLE_MEET_AND_CALENDAR.value if calendar_event_id else None,
            status=status.value,
        )
        db_session.add(meeting)
        db_session.commit()
        return meeting

    return _make


@pytest.fixture
def booking_request():
    def _make(event, start=datetime(2025, 1, 6, 10, 0), minutes=None, **overrides):
        minutes = event.duration if minutes is None else minutes
        fields = {
            "eventId": event.id,
            "startTime": start,
            "endTime": start + timedelta(minutes=minutes),
            "guestName": "Ada Guest",
            "guestEmail": "ada@example.com",
            "additionalInfo": "Looking forward to it",
        }
        fields.update(overrides)
        return CreateBookingRequest(**fields)

    return _make
