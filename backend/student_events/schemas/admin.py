"""Pydantic schemas for admin user management and maintenance jobs."""
from __future__ import annotations
from pydantic import BaseModel

from student_events.models.user import UserRole
from student_events.schemas.event import EventStatsOut
from student_events.schemas.user import UserOut


class UserStatusUpdate(BaseModel):
    is_active: bool


class UserRoleUpdate(BaseModel):
    role: UserRole


class UserActivity(BaseModel):
    events_created: int
    attending_rsvps: int


class UserDetailOut(BaseModel):
    user: UserOut
    stats: UserActivity


class UserCounts(BaseModel):
    total: int
    active: int
    students: int
    admins: int


class RSVPCounts(BaseModel):
    total: int
    attending: int
    cancelled: int


class SystemStatsOut(BaseModel):
    users: UserCounts
    events: EventStatsOut
    rsvps: RSVPCounts


class SweepOut(BaseModel):
    removed: int


class DriftOut(BaseModel):
    event_id: str
    cached: int
    actual: int


class ReconcileOut(BaseModel):
    corrected: list[DriftOut]
