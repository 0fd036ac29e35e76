"""Event ORM model: submission, approval workflow, cached occupancy."""
import uuid
import enum
from datetime import datetime

from sqlalchemy import Column, String, Date, DateTime, Integer, Boolean, ForeignKey, Index, CheckConstraint, Enum as SAEnum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from student_events.database import Base
from student_events.timeutils import local_to_utc


class EventStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    cancelled = "cancelled"
    completed = "completed"


class EventCategory(str, enum.Enum):
    academic = "academic"
    social = "social"
    sports = "sports"
    cultural = "cultural"
    career = "career"
    workshop = "workshop"
    other = "other"


class Event(Base):
    __tablename__ = "events"

    event_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    title = Column(String(100), nullable=False)
    description = Column(String(2000), nullable=False)
    date = Column(Date, nullable=False)
    time = Column(String(5), nullable=False)  # HH:MM, campus-local
    end_date = Column(Date, nullable=True)
    end_time = Column(String(5), nullable=True)
    location = Column(String(255), nullable=False)
    category = Column(SAEnum(EventCategory), nullable=False, default=EventCategory.other)
    status = Column(SAEnum(EventStatus), nullable=False, default=EventStatus.pending)
    rejection_reason = Column(String(500), nullable=True)
    capacity = Column(Integer, nullable=False, default=50)
    # Cached aggregate; the attending RSVP rows are the source of truth.
    current_attendees = Column(Integer, nullable=False, default=0)
    image_url = Column(String(500), nullable=False, default="")
    is_online = Column(Boolean, nullable=False, default=False)
    tags = Column(String(500), nullable=False, default="")
    contact_email = Column(String(254), nullable=False)
    contact_phone = Column(String(30), nullable=True)
    is_featured = Column(Boolean, nullable=False, default=False)
    created_by = Column(String(36), ForeignKey("users.user_id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    rsvps = relationship("RSVP", back_populates="event", cascade="all, delete-orphan")
    owner = relationship("User")

    __table_args__ = (
        Index("ix_events_status_date", "status", "date"),
        Index("ix_events_category", "category"),
        CheckConstraint("capacity > 0", name="ck_events_capacity_positive"),
        CheckConstraint("current_attendees >= 0", name="ck_events_attendees_non_negative"),
    )

    @property
    def starts_at(self) -> datetime:
        return local_to_utc(self.date, self.time)

    @property
    def is_full(self) -> bool:
        return self.current_attendees >= self.capacity

    def __repr__(self) -> str:
        return f"<Event(id={self.event_id}, title={self.title}, status={self.status}, {self.current_attendees}/{self.capacity})>"
