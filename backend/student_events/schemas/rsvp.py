"""Pydantic schemas for RSVPs."""
from __future__ import annotations
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from student_events.models.rsvp import RSVPStatus
from student_events.schemas.event import EventOut


class RSVPCreate(BaseModel):
    number_of_guests: int = Field(0, ge=0, le=5)
    dietary_preferences: Optional[str] = Field(None, max_length=200)


class RSVPUpdate(BaseModel):
    number_of_guests: Optional[int] = Field(None, ge=0, le=5)
    dietary_preferences: Optional[str] = Field(None, max_length=200)
    status: Optional[RSVPStatus] = None


class RSVPOut(BaseModel):
    rsvp_id: str
    event_id: str
    user_id: str
    status: RSVPStatus
    number_of_guests: int
    dietary_preferences: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class RSVPWithEventOut(RSVPOut):
    event: EventOut


class AttendeeUserOut(BaseModel):
    user_id: str
    first_name: str
    last_name: str
    email: str
    department: Optional[str] = None

    model_config = {"from_attributes": True}


class AttendeeOut(BaseModel):
    rsvp_id: str
    number_of_guests: int
    dietary_preferences: Optional[str] = None
    created_at: Optional[datetime] = None
    user: AttendeeUserOut

    model_config = {"from_attributes": True}


class AttendeeListOut(BaseModel):
    event_id: str
    total_rsvps: int
    total_attendees: int
    attendees: list[AttendeeOut]


class RSVPCheckOut(BaseModel):
    has_rsvped: bool
    rsvp: Optional[RSVPOut] = None
