"""RSVP API routes: all occupancy changes go through rsvp_service."""
import logging
from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.orm import Session

from student_events.database import get_db
from student_events.dependencies import get_current_user, get_email_sender
from student_events.models.rsvp import RSVPStatus
from student_events.models.user import User
from student_events.schemas.rsvp import (
    AttendeeListOut,
    AttendeeOut,
    RSVPCheckOut,
    RSVPCreate,
    RSVPOut,
    RSVPUpdate,
    RSVPWithEventOut,
)
from student_events.services import email_service, event_service, rsvp_service
from student_events.services.email_service import EmailSender

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/my-rsvps", response_model=list[RSVPWithEventOut])
def my_rsvps(
    scope: str = Query("upcoming", pattern="^(upcoming|past)$"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return rsvp_service.list_user_rsvps(db, user.user_id, scope=scope)


@router.get("/check/{event_id}", response_model=RSVPCheckOut)
def check_rsvp(event_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Whether the caller currently holds an attending RSVP for this event."""
    rsvp = rsvp_service.find_rsvp(db, event_id, user.user_id)
    return RSVPCheckOut(
        has_rsvped=rsvp is not None and rsvp.status == RSVPStatus.attending,
        rsvp=RSVPOut.model_validate(rsvp) if rsvp else None,
    )


@router.get("/event/{event_id}/attendees", response_model=AttendeeListOut)
def event_attendees(event_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Attendee list for the event's owner or an admin."""
    event = event_service.get_event(db, event_id)
    event_service.check_authorization(event, user)
    rsvps = rsvp_service.list_attendees(db, event_id)
    return AttendeeListOut(
        event_id=event_id,
        total_rsvps=len(rsvps),
        total_attendees=sum(r.headcount for r in rsvps),
        attendees=[AttendeeOut.model_validate(r) for r in rsvps],
    )


@router.post("/{event_id}", response_model=RSVPOut, status_code=status.HTTP_201_CREATED)
def create_rsvp(
    event_id: str,
    payload: RSVPCreate,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
):
    """RSVP to an approved upcoming event, or reactivate a cancelled RSVP."""
    rsvp = rsvp_service.add_rsvp(db, event_id, user, payload.number_of_guests, payload.dietary_preferences)
    event = rsvp.event
    background_tasks.add_task(
        email_service.notify_rsvp_confirmation,
        sender, user.email, event.title, event.date.isoformat(), event.time, user.first_name,
    )
    return rsvp


@router.put("/{event_id}", response_model=RSVPOut)
def update_rsvp(
    event_id: str,
    payload: RSVPUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return rsvp_service.update_rsvp(
        db,
        event_id,
        user,
        number_of_guests=payload.number_of_guests,
        dietary_preferences=payload.dietary_preferences,
        new_status=payload.status,
    )


@router.delete("/{event_id}", response_model=RSVPOut)
def cancel_rsvp(event_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Cancel the caller's RSVP. Repeating the call is harmless."""
    return rsvp_service.cancel_rsvp(db, event_id, user)
