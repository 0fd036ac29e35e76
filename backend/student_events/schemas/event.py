"""Pydantic schemas for Events."""
from __future__ import annotations
import datetime as dt
from typing import Optional
from pydantic import BaseModel, EmailStr, Field, field_validator

from student_events.models.event import EventCategory, EventStatus

TIME_PATTERN = r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$"
PHONE_PATTERN = r"^[\d\s\-\+\(\)]{10,20}$"


def _pad_time(value: Optional[str]) -> Optional[str]:
    """``9:05`` -> ``09:05`` so stored times sort lexically."""
    if value is None:
        return value
    hours, minutes = value.split(":")
    return f"{int(hours):02d}:{minutes}"


class EventCreate(BaseModel):
    title: str = Field(..., min_length=3, max_length=100)
    description: str = Field(..., min_length=10, max_length=2000)
    date: dt.date
    time: str = Field(..., pattern=TIME_PATTERN)
    end_date: Optional[dt.date] = None
    end_time: Optional[str] = Field(None, pattern=TIME_PATTERN)
    location: str = Field(..., min_length=3, max_length=200)
    category: EventCategory = EventCategory.other
    capacity: Optional[int] = Field(None, ge=1, le=1000)
    image_url: Optional[str] = Field(None, max_length=500)
    is_online: bool = False
    tags: Optional[str] = Field(None, max_length=500)  # comma-separated
    contact_email: Optional[EmailStr] = None
    contact_phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)

    @field_validator("title", "description", "location", mode="before")
    @classmethod
    def strip_text(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("time", "end_time")
    @classmethod
    def pad_time(cls, value):
        return _pad_time(value)


class EventUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=3, max_length=100)
    description: Optional[str] = Field(None, min_length=10, max_length=2000)
    date: Optional[dt.date] = None
    time: Optional[str] = Field(None, pattern=TIME_PATTERN)
    end_date: Optional[dt.date] = None
    end_time: Optional[str] = Field(None, pattern=TIME_PATTERN)
    location: Optional[str] = Field(None, min_length=3, max_length=200)
    category: Optional[EventCategory] = None
    capacity: Optional[int] = Field(None, ge=1, le=1000)
    image_url: Optional[str] = Field(None, max_length=500)
    is_online: Optional[bool] = None
    tags: Optional[str] = Field(None, max_length=500)
    contact_email: Optional[EmailStr] = None
    contact_phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    is_featured: Optional[bool] = None  # admin only
    status: Optional[EventStatus] = None  # admin only, goes through the transition table
    rejection_reason: Optional[str] = Field(None, max_length=500)

    @field_validator("time", "end_time")
    @classmethod
    def pad_time(cls, value):
        return _pad_time(value)


class RejectRequest(BaseModel):
    reason: str = Field(..., max_length=500)


class OwnerOut(BaseModel):
    user_id: str
    first_name: str
    last_name: str
    email: str

    model_config = {"from_attributes": True}


class EventOut(BaseModel):
    event_id: str
    title: str
    description: str
    date: dt.date
    time: str
    end_date: Optional[dt.date] = None
    end_time: Optional[str] = None
    location: str
    category: EventCategory
    status: EventStatus
    rejection_reason: Optional[str] = None
    capacity: int
    current_attendees: int
    is_full: bool
    image_url: Optional[str] = None
    is_online: bool
    tags: Optional[str] = None
    contact_email: str
    contact_phone: Optional[str] = None
    is_featured: bool
    created_by: str
    owner: Optional[OwnerOut] = None
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None

    model_config = {"from_attributes": True}


class StatusCount(BaseModel):
    status: str
    count: int


class CategoryCount(BaseModel):
    category: str
    count: int


class EventStatsOut(BaseModel):
    total_events: int
    total_attendees: int
    upcoming_events: int
    statuses: list[StatusCount] = []
    categories: list[CategoryCount] = []
