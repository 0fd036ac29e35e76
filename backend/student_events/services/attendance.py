"""Attendance ledger: the only code that touches ``Event.current_attendees``.

``current_attendees`` is a cached aggregate. The authoritative value is

    sum(1 + number_of_guests) over the event's RSVPs with status attending

which ``actual_occupancy`` computes in SQL. The cache is only ever moved by
signed deltas (``apply_occupancy_delta``), except for the reset to zero that
event cancellation performs in ``forfeit_attendance``. Decrements go through
``release_seats``, which resyncs a counter that fell behind before lowering it.

None of these helpers commit; they run inside the caller's transaction.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from student_events.models.event import Event
from student_events.models.rsvp import RSVP, RSVPStatus

logger = logging.getLogger(__name__)


@dataclass
class AttendanceDrift:
    event_id: str
    cached: int
    actual: int

    @property
    def delta(self) -> int:
        return self.actual - self.cached


def actual_occupancy(db: Session, event_id: str, exclude_rsvp_id: Optional[str] = None) -> int:
    query = db.query(func.coalesce(func.sum(1 + RSVP.number_of_guests), 0)).filter(
        RSVP.event_id == event_id,
        RSVP.status == RSVPStatus.attending,
    )
    if exclude_rsvp_id:
        query = query.filter(RSVP.rsvp_id != exclude_rsvp_id)
    return int(query.scalar() or 0)


def apply_occupancy_delta(db: Session, event_id: str, delta: int) -> None:
    """Move the cached counter by ``delta`` with a single in-database increment."""
    if delta == 0:
        return
    db.query(Event).filter(Event.event_id == event_id).update(
        {Event.current_attendees: Event.current_attendees + delta},
        synchronize_session=False,
    )
    logger.debug("Occupancy of event %s moved by %+d", event_id, delta)


def release_seats(db: Session, event_id: str, seats: int) -> None:
    """Give back ``seats`` seats still counted as attending in the database.

    If the cached counter holds fewer seats than that, it is first resynced
    from the RSVP rows so the decrement can never push it below zero.
    """
    if seats <= 0:
        return
    cached = db.query(Event.current_attendees).filter(Event.event_id == event_id).scalar()
    if cached is not None and cached < seats:
        actual = actual_occupancy(db, event_id)
        logger.warning(
            "Occupancy drift on event %s while releasing %d seats: cached=%d actual=%d",
            event_id, seats, cached, actual,
        )
        apply_occupancy_delta(db, event_id, actual - cached)
    apply_occupancy_delta(db, event_id, -seats)


def forfeit_attendance(db: Session, event: Event) -> int:
    """Cancel every attending RSVP of ``event`` and zero its counter. Returns RSVPs touched."""
    count = (
        db.query(RSVP)
        .filter(RSVP.event_id == event.event_id, RSVP.status == RSVPStatus.attending)
        .update({RSVP.status: RSVPStatus.cancelled}, synchronize_session=False)
    )
    event.current_attendees = 0
    logger.info("Event %s cancelled: %d attending RSVPs forfeited", event.event_id, count)
    return count


def release_user_attendance(db: Session, user_id: str) -> int:
    """Cancel every attending RSVP of ``user_id`` and give back its seats. Returns RSVPs touched."""
    attending = (
        db.query(RSVP)
        .filter(RSVP.user_id == user_id, RSVP.status == RSVPStatus.attending)
        .all()
    )
    for rsvp in attending:
        db.query(Event).filter(Event.event_id == rsvp.event_id).with_for_update().first()
        release_seats(db, rsvp.event_id, rsvp.headcount)
        rsvp.status = RSVPStatus.cancelled
    return len(attending)


def find_drift(db: Session, event_id: Optional[str] = None) -> list[AttendanceDrift]:
    attending_totals = (
        db.query(
            RSVP.event_id.label("event_id"),
            func.sum(1 + RSVP.number_of_guests).label("total"),
        )
        .filter(RSVP.status == RSVPStatus.attending)
        .group_by(RSVP.event_id)
        .subquery()
    )
    query = (
        db.query(Event.event_id, Event.current_attendees, func.coalesce(attending_totals.c.total, 0))
        .outerjoin(attending_totals, attending_totals.c.event_id == Event.event_id)
    )
    if event_id:
        query = query.filter(Event.event_id == event_id)

    drift = []
    for eid, cached, actual in query.all():
        if int(cached) != int(actual):
            drift.append(AttendanceDrift(event_id=eid, cached=int(cached), actual=int(actual)))
    return drift


def reconcile(db: Session, event_id: Optional[str] = None) -> list[AttendanceDrift]:
    """Recompute counters from the RSVP rows and correct any that drifted."""
    drift = find_drift(db, event_id)
    for item in drift:
        logger.warning(
            "Occupancy drift on event %s: cached=%d actual=%d, correcting by %+d",
            item.event_id, item.cached, item.actual, item.delta,
        )
        apply_occupancy_delta(db, item.event_id, item.delta)
    db.commit()
    return drift
