"""Scheduling router - FastAPI endpoints for public availability and bookings"""

import logging
from functools import lru_cache

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...config import get_google_oauth_settings
from ...database import get_db
from ...services.google_calendar_service import CalendarProvider, GoogleCalendarClient
from .availability_service import AvailabilityService
from .booking_service import BookingService
from .schemas import (
    BookingCreatedResponse,
    CreateBookingRequest,
    EventAvailabilityResponse,
    MeetingResponse,
    SimpleMessage,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Scheduling"])


@lru_cache(maxsize=1)
def get_calendar_provider() -> CalendarProvider:
    """Process-wide calendar client built from the immutable OAuth settings"""
    return GoogleCalendarClient(get_google_oauth_settings())


def get_availability_service(db: Session = Depends(get_db)) -> AvailabilityService:
    """Dependency injection for AvailabilityService"""
    return AvailabilityService(db)


def get_booking_service(
    db: Session = Depends(get_db),
    provider: CalendarProvider = Depends(get_calendar_provider),
) -> BookingService:
    """Dependency injection for BookingService"""
    return BookingService(db, provider)


@router.get("/public/events/{event_id}/availability", response_model=EventAvailabilityResponse)
async def get_public_event_availability(
    event_id: int,
    service: AvailabilityService = Depends(get_availability_service),
):
    """Bookable slots for each weekday over the coming week (no auth required)"""
    return EventAvailabilityResponse(data=service.get_public_event_availability(event_id))


@router.post("/public/meetings", response_model=BookingCreatedResponse, status_code=201)
async def create_booking(
    data: CreateBookingRequest,
    service: BookingService = Depends(get_booking_service),
):
    """Book a slot on a public event (no auth required)"""
    meeting = await service.create_booking(data)
    return BookingCreatedResponse(
        meetLink=meeting.meet_link,
        meeting=MeetingResponse.from_meeting(meeting),
    )


@router.put("/meetings/{meeting_id}/cancel", response_model=SimpleMessage)
async def cancel_meeting(
    meeting_id: int,
    service: BookingService = Depends(get_booking_service),
):
    await service.cancel_meeting(meeting_id)
    return SimpleMessage(message="Meeting cancelled successfully")
