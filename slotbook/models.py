from sqlalchemy import (
    DDL,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base
from .enums import MeetingStatus


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    username = Column(String(255), unique=True, index=True, nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    image_url = Column(String(500), nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    availability = relationship("Availability", back_populates="user", uselist=False)
    events = relationship("Event", back_populates="user")


class Availability(Base):
    __tablename__ = "availability"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)
    time_gap = Column(Integer, nullable=False, default=30)  # minutes between slot starts

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="availability")
    days = relationship(
        "DayAvailability",
        back_populates="availability",
        cascade="all, delete-orphan",
        order_by="DayAvailability.id",
    )


class DayAvailability(Base):
    __tablename__ = "day_availability"
    __table_args__ = (UniqueConstraint("availability_id", "day", name="uq_day_availability_day"),)

    id = Column(Integer, primary_key=True, index=True)
    availability_id = Column(Integer, ForeignKey("availability.id"), nullable=False, index=True)
    day = Column(String(10), nullable=False)  # Weekday value, e.g. MONDAY
    start_time = Column(String(8), nullable=False)  # HH:MM wall clock
    end_time = Column(String(8), nullable=False)
    is_available = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    availability = relationship("Availability", back_populates="days")


class Event(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    duration = Column(Integer, nullable=False, default=30)  # minutes
    slug = Column(String(255), nullable=False)
    is_private = Column(Boolean, default=False, nullable=False)
    location_type = Column(String(50), nullable=False)  # EventLocationType value

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="events")


class Integration(Base):
    __tablename__ = "integrations"
    __table_args__ = (UniqueConstraint("user_id", "app_type", name="uq_integrations_user_app"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    provider = Column(String(50), nullable=False)
    category = Column(String(50), nullable=False)
    app_type = Column(String(50), nullable=False)

    # OAuth tokens (encrypted)
    access_token = Column(Text, nullable=True)
    refresh_token = Column(Text, nullable=True)
    expiry_date = Column(DateTime, nullable=True)  # naive UTC

    is_connected = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    user = relationship("User")


class Meeting(Base):
    __tablename__ = "meetings"
    __table_args__ = (
        # Exact-duplicate guard on every dialect. Overlaps are rejected by the
        # exclusion constraint on PostgreSQL and by a trigger on SQLite, both below
        Index(
            "uq_meetings_owner_start_scheduled",
            "user_id",
            "start_time",
            unique=True,
            sqlite_where=text("status = 'SCHEDULED'"),
            postgresql_where=text("status = 'SCHEDULED'"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)  # event owner
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    guest_name = Column(String(255), nullable=False)
    guest_email = Column(String(255), nullable=False)
    additional_info = Column(Text, nullable=True)
    start_time = Column(DateTime, nullable=False)  # naive UTC
    end_time = Column(DateTime, nullable=False)
    meet_link = Column(String(500), nullable=True)
    calendar_event_id = Column(String(500), nullable=True, index=True)
    calendar_app_type = Column(String(50), nullable=True)
    status = Column(String(20), nullable=False, default=MeetingStatus.SCHEDULED.value)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    event = relationship("Event")


class ReconciliationTask(Base):
    """Remote calendar state that no longer matches local state"""

    __tablename__ = "reconciliation_tasks"

    id = Column(Integer, primary_key=True, index=True)
    kind = Column(String(50), nullable=False)  # see reconciliation.py for the kinds
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    meeting_id = Column(Integer, ForeignKey("meetings.id"), nullable=True)
    app_type = Column(String(50), nullable=True)
    calendar_event_id = Column(String(500), nullable=True)
    detail = Column(Text, nullable=True)
    resolved = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, server_default=func.now())


MEETING_EXCLUSION_CONSTRAINT = "excl_meetings_owner_no_overlap"

event.listen(
    Meeting.__table__,
    "before_create",
    DDL("CREATE EXTENSION IF NOT EXISTS btree_gist").execute_if(dialect="postgresql"),
)
event.listen(
    Meeting.__table__,
    "after_create",
    DDL(
        f"ALTER TABLE meetings ADD CONSTRAINT {MEETING_EXCLUSION_CONSTRAINT} "
        "EXCLUDE USING gist (user_id WITH =, tsrange(start_time, end_time, '[)') WITH &&) "
        "WHERE (status = 'SCHEDULED')"
    ).execute_if(dialect="postgresql"),
)
event.listen(
    Meeting.__table__,
    "after_create",
    DDL(
        "CREATE TRIGGER IF NOT EXISTS trg_meetings_owner_no_overlap "
        "BEFORE INSERT ON meetings "
        "WHEN NEW.status = 'SCHEDULED' AND EXISTS ("
        "SELECT 1 FROM meetings WHERE user_id = NEW.user_id AND status = 'SCHEDULED' "
        "AND start_time < NEW.end_time AND end_time > NEW.start_time) "
        f"BEGIN SELECT RAISE(ABORT, '{MEETING_EXCLUSION_CONSTRAINT}'); END"
    ).execute_if(dialect="sqlite"),
)
