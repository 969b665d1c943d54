"""
Scheduling Domain

Weekly availability, public slot listing and the booking workflow.

Structure:
```
slotbook/domain/scheduling/
├── __init__.py
├── schemas.py              # Availability, slot and booking schemas
├── repository.py           # Availability, event, meeting and credential queries
├── time_calculator.py      # Time parsing and weekday arithmetic
├── slot_generator.py       # Free slot computation for one day
├── availability_service.py # Weekly rules, 7-day public availability
├── token_service.py        # Credential refresh + persist
├── booking_service.py      # Create / cancel / list meetings
├── reconciliation.py       # Remote calendar drift records
└── router.py               # Public availability + booking endpoints
```

INVARIANTS:
- At most one SCHEDULED meeting per owner covers any instant (enforced in storage: exclusion constraint on PostgreSQL, insert trigger on SQLite)
- A meeting row is only written after its remote calendar event exists
- Cancellation always completes locally, even when remote deletion fails
- A refreshed access token is persisted before the booking uses it

EXTERNAL INTEGRATIONS:
- Google Calendar (create/delete events, token refresh)
- Zoom (connection required, no remote calendar event)
"""
