"""Slotbook - weekly availability, public slot listing and calendar-backed bookings"""

__version__ = "1.0.0"
