"""Scheduling domain schemas - Pydantic models for validation"""

import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, field_validator, model_validator

from ...enums import Weekday

_HM_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class DayRule(BaseModel):
    """One weekday's open window"""

    day: Weekday
    startTime: str
    endTime: str
    isAvailable: bool

    @field_validator("startTime", "endTime")
    @classmethod
    def validate_hm(cls, v):
        if not _HM_RE.match(v):
            raise ValueError("Time must be in HH:MM format")
        return v


class AvailabilityResponse(BaseModel):
    timeGap: int
    days: list[DayRule]


class UpdateAvailabilityRequest(BaseModel):
    timeGap: int
    days: list[DayRule]

    @field_validator("timeGap")
    @classmethod
    def validate_time_gap(cls, v):
        if v <= 0:
            raise ValueError("timeGap must be a positive number of minutes")
        return v


class DailySlots(BaseModel):
    day: Weekday
    slots: list[str]
    isAvailable: bool


class EventAvailabilityResponse(BaseModel):
    message: str = "Event availability fetched successfully"
    data: list[DailySlots]


class CreateBookingRequest(BaseModel):
    eventId: int
    startTime: datetime
    endTime: datetime
    guestName: str
    guestEmail: EmailStr
    additionalInfo: Optional[str] = None

    @field_validator("guestName")
    @classmethod
    def validate_guest_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("guestName is required")
        return v

    @field_validator("guestEmail")
    @classmethod
    def normalize_guest_email(cls, v):
        return v.lower()

    @model_validator(mode="after")
    def validate_interval(self):
        if self.endTime <= self.startTime:
            raise ValueError("endTime must be after startTime")
        return self


class MeetingResponse(BaseModel):
    id: int
    userId: int
    eventId: int
    guestName: str
    guestEmail: str
    additionalInfo: Optional[str] = None
    startTime: datetime
    endTime: datetime
    meetLink: Optional[str] = None
    calendarEventId: Optional[str] = None
    calendarAppType: Optional[str] = None
    status: str

    @classmethod
    def from_meeting(cls, meeting) -> "MeetingResponse":
        return cls(
            id=meeting.id,
            userId=meeting.user_id,
            eventId=meeting.event_id,
            guestName=meeting.guest_name,
            guestEmail=meeting.guest_email,
            additionalInfo=meeting.additional_info,
            startTime=meeting.start_time,
            endTime=meeting.end_time,
            meetLink=meeting.meet_link or None,
            calendarEventId=meeting.calendar_event_id or None,
            calendarAppType=meeting.calendar_app_type or None,
            status=meeting.status,
        )


class BookingCreatedResponse(BaseModel):
    message: str = "Meeting scheduled successfully"
    meetLink: Optional[str] = None
    meeting: MeetingResponse


class SimpleMessage(BaseModel):
    message: str
