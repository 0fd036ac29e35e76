"""RSVP operations guarded by event capacity.

Every mutation runs as one transaction:

1. lock the event row (``SELECT ... FOR UPDATE``) so writers on the same
   event serialise,
2. re-check that the event is open (approved, in the future),
3. recompute occupancy from the attending RSVP rows, never from the cache,
4. write the RSVP and move the cached counter by the matching signed delta,
5. commit, or roll back everything on any failure.

The ``(event_id, user_id)`` unique constraint backs up step 1 on storage
without row locks: a racing duplicate insert fails and surfaces as
``ALREADY_RSVPED`` instead of double-counting.
"""
import logging
from datetime import date, datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from fastapi import status

from student_events.config import settings
from student_events.database import atomic
from student_events.errors import AppError, ConflictError, NotFoundError, PermissionDeniedError
from student_events.models.event import Event
from student_events.models.rsvp import RSVP, RSVPStatus
from student_events.models.user import User
from student_events.services import attendance, event_service
from student_events.timeutils import utcnow

logger = logging.getLogger(__name__)

CAPACITY_MESSAGES = {
    "EVENT_FULL": "Event is at full capacity",
    "CAPACITY_EXCEEDED": "Cannot add guests, event would exceed capacity",
}


def _reject_admin(user: User) -> None:
    if user.is_admin:
        raise PermissionDeniedError("Admin accounts cannot RSVP to events", "ADMIN_CANNOT_RSVP")


def _validate_guests(number_of_guests: int) -> None:
    if not 0 <= number_of_guests <= settings.MAX_GUESTS_PER_RSVP:
        raise AppError(
            f"Number of guests must be between 0 and {settings.MAX_GUESTS_PER_RSVP}",
            status.HTTP_400_BAD_REQUEST,
            "VALIDATION_ERROR",
        )


def find_rsvp(db: Session, event_id: str, user_id: str) -> Optional[RSVP]:
    return db.query(RSVP).filter(RSVP.event_id == event_id, RSVP.user_id == user_id).first()


def _require_rsvp(db: Session, event_id: str, user_id: str) -> RSVP:
    rsvp = find_rsvp(db, event_id, user_id)
    if not rsvp:
        raise NotFoundError("RSVP not found", "RSVP_NOT_FOUND")
    return rsvp


def check_capacity(
    db: Session,
    event: Event,
    requested: int,
    exclude_rsvp_id: Optional[str] = None,
    code: str = "EVENT_FULL",
) -> int:
    """Raise ``code`` if ``requested`` more seats do not fit. Returns the occupancy used for the decision."""
    occupied = attendance.actual_occupancy(db, event.event_id, exclude_rsvp_id)
    if exclude_rsvp_id is None and occupied != event.current_attendees:
        logger.warning(
            "Occupancy cache drift on event %s: cached=%d actual=%d",
            event.event_id, event.current_attendees, occupied,
        )
    if occupied + requested > event.capacity:
        raise ConflictError(
            CAPACITY_MESSAGES[code],
            code,
            {"capacity": event.capacity, "occupied": occupied, "requested": requested},
        )
    return occupied


def add_rsvp(
    db: Session,
    event_id: str,
    user: User,
    number_of_guests: int = 0,
    dietary_preferences: Optional[str] = None,
    now: Optional[datetime] = None,
) -> RSVP:
    """Create an attending RSVP, or reactivate a cancelled/waitlisted one."""
    _reject_admin(user)
    _validate_guests(number_of_guests)
    requested = 1 + number_of_guests

    try:
        with atomic(db):
            event = event_service.get_event(db, event_id, for_update=True)
            event_service.ensure_open_for_rsvp(event, now)
            check_capacity(db, event, requested)

            rsvp = find_rsvp(db, event_id, user.user_id)
            if rsvp and rsvp.status == RSVPStatus.attending:
                raise ConflictError("You have already RSVPed to this event", "ALREADY_RSVPED")

            if rsvp:
                previous = rsvp.status
                rsvp.status = RSVPStatus.attending
                rsvp.number_of_guests = number_of_guests
                if dietary_preferences is not None:
                    rsvp.dietary_preferences = dietary_preferences
                logger.info("Reactivated RSVP %s (%s -> attending)", rsvp.rsvp_id, previous.value)
            else:
                rsvp = RSVP(
                    event_id=event_id,
                    user_id=user.user_id,
                    status=RSVPStatus.attending,
                    number_of_guests=number_of_guests,
                    dietary_preferences=dietary_preferences,
                )
                db.add(rsvp)
                db.flush()

            attendance.apply_occupancy_delta(db, event_id, requested)
    except IntegrityError:
        logger.info("Duplicate RSVP insert for user %s on event %s", user.user_id, event_id)
        raise ConflictError("You have already RSVPed to this event", "ALREADY_RSVPED")

    db.refresh(rsvp)
    logger.info("User %s RSVPed to event %s (+%d)", user.user_id, event_id, requested)
    return rsvp


def cancel_rsvp(db: Session, event_id: str, user: User) -> RSVP:
    """Cancel the caller's RSVP. Cancelling an already-cancelled RSVP is a successful no-op."""
    with atomic(db):
        event_service.get_event(db, event_id, for_update=True)
        rsvp = _require_rsvp(db, event_id, user.user_id)

        if rsvp.status == RSVPStatus.cancelled:
            logger.info("RSVP %s already cancelled", rsvp.rsvp_id)
            return rsvp

        if rsvp.status == RSVPStatus.attending:
            attendance.release_seats(db, event_id, rsvp.headcount)
        rsvp.status = RSVPStatus.cancelled

    db.refresh(rsvp)
    logger.info("User %s cancelled RSVP to event %s", user.user_id, event_id)
    return rsvp


def update_rsvp(
    db: Session,
    event_id: str,
    user: User,
    number_of_guests: Optional[int] = None,
    dietary_preferences: Optional[str] = None,
    new_status: Optional[RSVPStatus] = None,
    now: Optional[datetime] = None,
) -> RSVP:
    """Change guests, dietary note, and/or status of the caller's RSVP."""
    _reject_admin(user)
    if number_of_guests is not None:
        _validate_guests(number_of_guests)

    with atomic(db):
        event = event_service.get_event(db, event_id, for_update=True)
        rsvp = _require_rsvp(db, event_id, user.user_id)

        if new_status is not None and new_status != rsvp.status:
            if new_status == RSVPStatus.attending:
                guests = rsvp.number_of_guests if number_of_guests is None else number_of_guests
                event_service.ensure_open_for_rsvp(event, now)
                check_capacity(db, event, 1 + guests)
                rsvp.status = RSVPStatus.attending
                rsvp.number_of_guests = guests
                attendance.apply_occupancy_delta(db, event_id, 1 + guests)
                number_of_guests = None
            else:
                if rsvp.status == RSVPStatus.attending:
                    attendance.release_seats(db, event_id, rsvp.headcount)
                rsvp.status = new_status

        if number_of_guests is not None and number_of_guests != rsvp.number_of_guests:
            if rsvp.status != RSVPStatus.attending:
                raise AppError(
                    "Guests can only be changed on an attending RSVP",
                    status.HTTP_400_BAD_REQUEST,
                    "RSVP_NOT_ATTENDING",
                )
            event_service.ensure_open_for_rsvp(event, now)
            check_capacity(db, event, 1 + number_of_guests, exclude_rsvp_id=rsvp.rsvp_id, code="CAPACITY_EXCEEDED")
            delta = number_of_guests - rsvp.number_of_guests
            if delta < 0:
                attendance.release_seats(db, event_id, -delta)
            else:
                attendance.apply_occupancy_delta(db, event_id, delta)
            rsvp.number_of_guests = number_of_guests

        if dietary_preferences is not None:
            rsvp.dietary_preferences = dietary_preferences

    db.refresh(rsvp)
    logger.info("User %s updated RSVP to event %s", user.user_id, event_id)
    return rsvp


def list_attendees(db: Session, event_id: str) -> list[RSVP]:
    event_service.get_event(db, event_id)
    return (
        db.query(RSVP)
        .filter(RSVP.event_id == event_id, RSVP.status == RSVPStatus.attending)
        .order_by(RSVP.created_at.desc())
        .all()
    )


def list_user_rsvps(db: Session, user_id: str, scope: str = "upcoming", today: Optional[date] = None) -> list[RSVP]:
    today = today or utcnow().date()
    query = (
        db.query(RSVP)
        .join(Event, Event.event_id == RSVP.event_id)
        .filter(RSVP.user_id == user_id, RSVP.status == RSVPStatus.attending)
    )
    if scope == "past":
        query = query.filter(Event.date < today)
    else:
        query = query.filter(Event.date >= today)
    return query.order_by(Event.date).all()
