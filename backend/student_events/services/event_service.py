"""Event workflow: submission, edits, and the status state machine.

Responsibilities:
- Authorization hook: only the owner or an admin may edit/delete/cancel
- Status transitions: pending -> approved | rejected (admin only),
  approved -> cancelled | completed; nothing else
- Date rules: events start strictly in the future, end >= start + 15 min
- ``ensure_open_for_rsvp`` gate used by every occupancy-adding RSVP mutation
"""
import logging
from datetime import date, datetime, timedelta
from typing import Any, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session
from fastapi import status

from student_events.config import settings
from student_events.database import atomic
from student_events.errors import AppError, ConflictError, NotFoundError, PermissionDeniedError
from student_events.models.event import Event, EventCategory, EventStatus
from student_events.models.user import User
from student_events.services import attendance
from student_events.timeutils import local_to_utc, utcnow

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[EventStatus, set[EventStatus]] = {
    EventStatus.pending: {EventStatus.approved, EventStatus.rejected},
    EventStatus.approved: {EventStatus.cancelled, EventStatus.completed},
    EventStatus.rejected: set(),
    EventStatus.cancelled: set(),
    EventStatus.completed: set(),
}

# Transitions an owner may make on their own event; everything else is admin-only.
OWNER_TRANSITIONS = {(EventStatus.approved, EventStatus.cancelled)}

MIN_EVENT_DURATION = timedelta(minutes=15)

EDITABLE_FIELDS = {
    "title", "description", "date", "time", "end_date", "end_time", "location",
    "category", "capacity", "image_url", "is_online", "tags", "contact_email",
    "contact_phone", "is_featured",
}
NULLABLE_FIELDS = {"end_date", "end_time", "contact_phone"}


def get_event(db: Session, event_id: str, for_update: bool = False) -> Event:
    query = db.query(Event).filter(Event.event_id == event_id)
    if for_update:
        query = query.with_for_update()
    event = query.first()
    if not event:
        raise NotFoundError("Event not found", "EVENT_NOT_FOUND")
    return event


def check_authorization(event: Event, actor: User) -> None:
    """Only the owner or an admin may modify this event."""
    if not actor.is_admin and event.created_by != actor.user_id:
        raise PermissionDeniedError("You do not have permission to perform this action.")


def _check_schedule(event: Event, now: datetime) -> None:
    if event.starts_at <= now:
        raise AppError("Event date must be in the future", status.HTTP_400_BAD_REQUEST, "INVALID_DATE")

    if event.end_date and event.end_time:
        ends_at = local_to_utc(event.end_date, event.end_time)
        if ends_at - event.starts_at < MIN_EVENT_DURATION:
            raise AppError(
                "Event end date and time must be at least 15 minutes after the start date and time",
                status.HTTP_400_BAD_REQUEST,
                "INVALID_END_TIME",
            )


def ensure_open_for_rsvp(event: Event, now: Optional[datetime] = None) -> None:
    """Raise unless ``event`` is approved and starts strictly after ``now``."""
    now = now or utcnow()
    if event.status != EventStatus.approved:
        raise AppError("You can only RSVP to approved events", status.HTTP_400_BAD_REQUEST, "EVENT_NOT_APPROVED")
    if event.starts_at <= now:
        raise AppError("Cannot RSVP to past events", status.HTTP_400_BAD_REQUEST, "EVENT_PAST")


def can_view(event: Event, viewer: Optional[User]) -> bool:
    if event.status == EventStatus.approved:
        return True
    return viewer is not None and (viewer.is_admin or event.created_by == viewer.user_id)


def create_event(db: Session, owner: User, data: dict[str, Any], now: Optional[datetime] = None) -> Event:
    """Submit a new event. It always starts out pending admin approval."""
    now = now or utcnow()
    event = Event(
        **{k: v for k, v in data.items() if k in EDITABLE_FIELDS and v is not None},
        created_by=owner.user_id,
        status=EventStatus.pending,
        current_attendees=0,
    )
    if not event.contact_email:
        event.contact_email = owner.email
    if event.capacity is None:
        event.capacity = settings.DEFAULT_EVENT_CAPACITY
    _check_schedule(event, now)

    db.add(event)
    db.commit()
    db.refresh(event)
    logger.info("Created event '%s' (%s) by %s, pending approval", event.title, event.event_id, owner.user_id)
    return event


def update_event(
    db: Session,
    event_id: str,
    actor: User,
    updates: dict[str, Any],
    now: Optional[datetime] = None,
) -> Event:
    """Edit fields of an event. Non-admins cannot touch ``status``; admins go through the transition table."""
    now = now or utcnow()
    with atomic(db):
        event = get_event(db, event_id, for_update=True)
        check_authorization(event, actor)
        _apply_updates(db, event, actor, updates, now)

    db.refresh(event)
    logger.info("Updated event %s by %s", event_id, actor.user_id)
    return event


def _apply_updates(db: Session, event: Event, actor: User, updates: dict[str, Any], now: datetime) -> None:
    requested_status = updates.pop("status", None)
    reason = updates.pop("rejection_reason", None)
    if not actor.is_admin:
        updates.pop("is_featured", None)

    if "capacity" in updates and updates["capacity"] is not None:
        occupied = attendance.actual_occupancy(db, event.event_id)
        if updates["capacity"] < occupied:
            raise ConflictError(
                f"Capacity cannot be lower than the {occupied} attendees already confirmed",
                "CAPACITY_BELOW_ATTENDANCE",
            )

    schedule_changed = False
    for field, value in updates.items():
        if field not in EDITABLE_FIELDS:
            continue
        if value is None and field not in NULLABLE_FIELDS:
            continue
        if field in ("date", "time", "end_date", "end_time"):
            schedule_changed = True
        setattr(event, field, value)

    if schedule_changed:
        _check_schedule(event, now)

    if requested_status is not None and actor.is_admin and EventStatus(requested_status) != event.status:
        _transition(db, event, EventStatus(requested_status), actor, reason)


def _transition(db: Session, event: Event, target: EventStatus, actor: User, reason: Optional[str] = None) -> None:
    current = event.status
    if target not in ALLOWED_TRANSITIONS[current]:
        raise ConflictError(
            f"Cannot move an event from {current.value} to {target.value}",
            "INVALID_STATUS_TRANSITION",
        )
    if not actor.is_admin and (current, target) not in OWNER_TRANSITIONS:
        raise PermissionDeniedError(
            "You do not have permission to perform this action. Admin access required.",
            "ADMIN_REQUIRED",
        )

    if target == EventStatus.rejected:
        reason = (reason or "").strip()
        if len(reason) < settings.MIN_REJECTION_REASON_LENGTH:
            raise AppError(
                f"Please provide a valid rejection reason (min {settings.MIN_REJECTION_REASON_LENGTH} characters)",
                status.HTTP_400_BAD_REQUEST,
                "INVALID_REJECTION_REASON",
            )
        event.rejection_reason = reason
    else:
        event.rejection_reason = None

    if target == EventStatus.cancelled:
        attendance.forfeit_attendance(db, event)

    event.status = target
    logger.info("Event %s: %s -> %s by %s", event.event_id, current.value, target.value, actor.user_id)


def _run_transition(
    db: Session,
    event_id: str,
    actor: User,
    target: EventStatus,
    reason: Optional[str] = None,
    owner_allowed: bool = False,
) -> Event:
    with atomic(db):
        event = get_event(db, event_id, for_update=True)
        if owner_allowed:
            check_authorization(event, actor)
        _transition(db, event, target, actor, reason)
    db.refresh(event)
    return event


def approve_event(db: Session, event_id: str, actor: User) -> Event:
    return _run_transition(db, event_id, actor, EventStatus.approved)


def reject_event(db: Session, event_id: str, actor: User, reason: Optional[str]) -> Event:
    return _run_transition(db, event_id, actor, EventStatus.rejected, reason)


def cancel_event(db: Session, event_id: str, actor: User) -> Event:
    """Cancel an approved event; all attendance is forfeited."""
    return _run_transition(db, event_id, actor, EventStatus.cancelled, owner_allowed=True)


def complete_event(db: Session, event_id: str, actor: User) -> Event:
    return _run_transition(db, event_id, actor, EventStatus.completed)


def delete_event(db: Session, event_id: str, actor: User) -> None:
    """Hard-delete an event; its RSVP rows go with it, so no counter bookkeeping is needed."""
    event = get_event(db, event_id)
    check_authorization(event, actor)
    db.delete(event)
    db.commit()
    logger.info("Deleted event %s by %s", event_id, actor.user_id)


def list_events(
    db: Session,
    viewer: Optional[User],
    event_status: Optional[EventStatus] = None,
    category: Optional[EventCategory] = None,
    search: Optional[str] = None,
    upcoming: bool = False,
    today: Optional[date] = None,
) -> list[Event]:
    """Public listing. Non-admins only ever see approved events."""
    if viewer is None or not viewer.is_admin or event_status is None:
        event_status = EventStatus.approved

    query = db.query(Event).filter(Event.status == event_status)
    if category:
        query = query.filter(Event.category == category)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            Event.title.ilike(pattern),
            Event.description.ilike(pattern),
            Event.location.ilike(pattern),
        ))
    if upcoming:
        query = query.filter(Event.date >= (today or utcnow().date()))
    return query.order_by(Event.date, Event.time).all()


def event_stats(db: Session, today: Optional[date] = None) -> dict[str, Any]:
    by_status = db.query(Event.status, func.count(Event.event_id), func.coalesce(func.sum(Event.current_attendees), 0)) \
        .group_by(Event.status).all()
    by_category = db.query(Event.category, func.count(Event.event_id)) \
        .group_by(Event.category).order_by(func.count(Event.event_id).desc()).all()
    upcoming = db.query(func.count(Event.event_id)).filter(
        Event.status == EventStatus.approved,
        Event.date >= (today or utcnow().date()),
    ).scalar()

    return {
        "total_events": sum(count for _, count, _ in by_status),
        "total_attendees": int(sum(total for _, _, total in by_status)),
        "statuses": [{"status": s.value, "count": count} for s, count, _ in by_status],
        "categories": [{"category": c.value, "count": count} for c, count in by_category],
        "upcoming_events": upcoming or 0,
    }


def list_owned_events(db: Session, owner_id: str) -> list[Event]:
    return db.query(Event).filter(Event.created_by == owner_id).order_by(Event.date.desc(), Event.time.desc()).all()
