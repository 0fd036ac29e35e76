"""RSVP ORM model: one row per (event, user), status toggles over time."""
import enum
import uuid
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Index, UniqueConstraint, CheckConstraint, Enum as SAEnum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from student_events.database import Base


class RSVPStatus(str, enum.Enum):
    attending = "attending"
    waitlisted = "waitlisted"
    cancelled = "cancelled"


class RSVP(Base):
    __tablename__ = "rsvps"

    rsvp_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_id = Column(String(36), ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(36), ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False)
    status = Column(SAEnum(RSVPStatus), nullable=False, default=RSVPStatus.attending)
    number_of_guests = Column(Integer, nullable=False, default=0)
    dietary_preferences = Column(String(200), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    event = relationship("Event", back_populates="rsvps")
    user = relationship("User")

    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_rsvp_event_user"),
        Index("ix_rsvps_event_status", "event_id", "status"),
        Index("ix_rsvps_user", "user_id"),
        CheckConstraint("number_of_guests BETWEEN 0 AND 5", name="ck_rsvps_guests_range"),
    )

    @property
    def headcount(self) -> int:
        """Attendee-equivalents this RSVP occupies while attending."""
        return 1 + (self.number_of_guests or 0)
