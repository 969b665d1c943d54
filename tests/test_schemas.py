"""Validation tests for the booking request schema."""

from datetime import datetime

import pytest
from pydantic import ValidationError

from slotbook.domain.scheduling.schemas import CreateBookingRequest


def booking(**overrides):
    data = {
        "eventId": 1,
        "startTime": datetime(2025, 1, 6, 10, 0),
        "endTime": datetime(2025, 1, 6, 11, 0),
        "guestName": "Ada Guest",
        "guestEmail": "ada@example.com",
    }
    data.update(overrides)
    return CreateBookingRequest(**data)


def test_guest_email_is_lowercased():
    assert booking(guestEmail="Ada.Guest@Example.COM").guestEmail == "ada.guest@example.com"


@pytest.mark.parametrize("email", ["nope", "a@b..c", "a@.x.y", 'a"<>@x.y', "ada@", "@example.com"])
def test_malformed_guest_email_is_rejected(email):
    with pytest.raises(ValidationError):
        booking(guestEmail=email)


def test_blank_guest_name_is_rejected():
    with pytest.raises(ValidationError):
        booking(guestName="   ")


def test_end_must_follow_start():
    with pytest.raises(ValidationError):
        booking(endTime=datetime(2025, 1, 6, 10, 0))
