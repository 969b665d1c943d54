"""
String enums shared by the models, schemas and services.
Values match what is stored in the database.
"""

from enum import Enum
from typing import Optional


class Weekday(str, Enum):
    SUNDAY = "SUNDAY"
    MONDAY = "MONDAY"
    TUESDAY = "TUESDAY"
    WEDNESDAY = "WEDNESDAY"
    THURSDAY = "THURSDAY"
    FRIDAY = "FRIDAY"
    SATURDAY = "SATURDAY"

    @property
    def iso_index(self) -> int:
        """Python weekday number (Monday == 0)"""
        return _ISO_INDEX[self]

    @classmethod
    def ordered(cls) -> list["Weekday"]:
        """All weekdays, Sunday first"""
        return list(cls)


_ISO_INDEX = {
    Weekday.MONDAY: 0,
    Weekday.TUESDAY: 1,
    Weekday.WEDNESDAY: 2,
    Weekday.THURSDAY: 3,
    Weekday.FRIDAY: 4,
    Weekday.SATURDAY: 5,
    Weekday.SUNDAY: 6,
}


class MeetingStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    CANCELLED = "CANCELLED"


class MeetingFilter(str, Enum):
    UPCOMING = "UPCOMING"
    PAST = "PAST"
    CANCELLED = "CANCELLED"

    @classmethod
    def parse(cls, value: Optional[str]) -> "MeetingFilter":
        """Unknown or empty filters fall back to UPCOMING"""
        try:
            return cls((value or "").upper())
        except ValueError:
            return cls.UPCOMING


class IntegrationProvider(str, Enum):
    GOOGLE = "GOOGLE"
    ZOOM = "ZOOM"
    MICROSOFT = "MICROSOFT"


class IntegrationCategory(str, Enum):
    CALENDAR_AND_VIDEO_CONFERENCING = "CALENDAR_AND_VIDEO_CONFERENCING"
    VIDEO_CONFERENCING = "VIDEO_CONFERENCING"
    CALENDAR = "CALENDAR"


class IntegrationAppType(str, Enum):
    GOOGLE_MEET_AND_CALENDAR = "GOOGLE_MEET_AND_CALENDAR"
    ZOOM_MEETING = "ZOOM_MEETING"
    OUTLOOK_CALENDAR = "OUTLOOK_CALENDAR"


class EventLocationType(str, Enum):
    GOOGLE_MEET_AND_CALENDAR = "GOOGLE_MEET_AND_CALENDAR"
    ZOOM_MEETING = "ZOOM_MEETING"


LOCATION_TO_APP_TYPE = {
    EventLocationType.GOOGLE_MEET_AND_CALENDAR: IntegrationAppType.GOOGLE_MEET_AND_CALENDAR,
    EventLocationType.ZOOM_MEETING: IntegrationAppType.ZOOM_MEETING,
}

# Location types whose bookings are mirrored to a remote calendar
REMOTE_CALENDAR_LOCATIONS = frozenset({EventLocationType.GOOGLE_MEET_AND_CALENDAR})

APP_TYPE_TO_PROVIDER = {
    IntegrationAppType.GOOGLE_MEET_AND_CALENDAR: IntegrationProvider.GOOGLE,
    IntegrationAppType.ZOOM_MEETING: IntegrationProvider.ZOOM,
    IntegrationAppType.OUTLOOK_CALENDAR: IntegrationProvider.MICROSOFT,
}

APP_TYPE_TO_CATEGORY = {
    IntegrationAppType.GOOGLE_MEET_AND_CALENDAR: IntegrationCategory.CALENDAR_AND_VIDEO_CONFERENCING,
    IntegrationAppType.ZOOM_MEETING: IntegrationCategory.VIDEO_CONFERENCING,
    IntegrationAppType.OUTLOOK_CALENDAR: IntegrationCategory.CALENDAR,
}
