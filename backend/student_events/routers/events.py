"""Event API routes: delegates to event_service for workflow enforcement."""
import logging
from typing import Optional
from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.orm import Session

from student_events.database import get_db
from student_events.dependencies import get_current_user, get_email_sender, get_optional_user, require_admin
from student_events.errors import NotFoundError
from student_events.models.event import Event, EventCategory, EventStatus
from student_events.models.user import User
from student_events.schemas.event import EventCreate, EventOut, EventStatsOut, EventUpdate, RejectRequest
from student_events.schemas.user import MessageOut
from student_events.services import email_service, event_service
from student_events.services.email_service import EmailSender

logger = logging.getLogger(__name__)
router = APIRouter()


def _notify_owner(background_tasks: BackgroundTasks, sender: EmailSender, event: Event) -> None:
    """Queue the approval/rejection email for the event's owner."""
    owner = event.owner
    if event.status == EventStatus.approved:
        background_tasks.add_task(
            email_service.notify_event_approved, sender, owner.email, event.title, owner.first_name,
        )
    elif event.status == EventStatus.rejected:
        background_tasks.add_task(
            email_service.notify_event_rejected,
            sender, owner.email, event.title, owner.first_name, event.rejection_reason,
        )


@router.get("/", response_model=list[EventOut])
def list_events(
    event_status: Optional[EventStatus] = Query(None, alias="status"),
    category: Optional[EventCategory] = Query(None),
    search: Optional[str] = Query(None, max_length=100),
    upcoming: bool = Query(False),
    viewer: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    """List approved events. Admins may filter by any status."""
    return event_service.list_events(
        db, viewer, event_status=event_status, category=category, search=search, upcoming=upcoming,
    )


@router.post("/", response_model=EventOut, status_code=status.HTTP_201_CREATED)
def create_event(
    payload: EventCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Submit an event for admin approval."""
    return event_service.create_event(db, user, payload.model_dump())


@router.get("/pending", response_model=list[EventOut])
def pending_events(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    """Admin review queue."""
    return event_service.list_events(db, admin, event_status=EventStatus.pending)


@router.get("/stats", response_model=EventStatsOut)
def event_stats(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    return event_service.event_stats(db)


@router.get("/my-events", response_model=list[EventOut])
def my_events(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return event_service.list_owned_events(db, user.user_id)


@router.get("/{event_id}", response_model=EventOut)
def get_event(
    event_id: str,
    viewer: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    """Fetch a single event. Unapproved events are only visible to their owner and admins."""
    event = event_service.get_event(db, event_id)
    if not event_service.can_view(event, viewer):
        raise NotFoundError("Event not found", "EVENT_NOT_FOUND")
    return event


@router.put("/{event_id}", response_model=EventOut)
def update_event(
    event_id: str,
    payload: EventUpdate,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
):
    """Edit an event (owner or admin). Admins may also move its status."""
    previous_status = event_service.get_event(db, event_id).status
    event = event_service.update_event(db, event_id, user, payload.model_dump(exclude_unset=True))
    if event.status != previous_status:
        _notify_owner(background_tasks, sender, event)
    return event


@router.delete("/{event_id}", response_model=MessageOut)
def delete_event(event_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    event_service.delete_event(db, event_id, user)
    return MessageOut(message="Event deleted successfully")


@router.patch("/{event_id}/approve", response_model=EventOut)
def approve_event(
    event_id: str,
    background_tasks: BackgroundTasks,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
):
    event = event_service.approve_event(db, event_id, admin)
    _notify_owner(background_tasks, sender, event)
    return event


@router.patch("/{event_id}/reject", response_model=EventOut)
def reject_event(
    event_id: str,
    payload: RejectRequest,
    background_tasks: BackgroundTasks,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
):
    event = event_service.reject_event(db, event_id, admin, payload.reason)
    _notify_owner(background_tasks, sender, event)
    return event


@router.patch("/{event_id}/cancel", response_model=EventOut)
def cancel_event(event_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Cancel an approved event (owner or admin). Every attending RSVP is cancelled with it."""
    return event_service.cancel_event(db, event_id, user)


@router.patch("/{event_id}/complete", response_model=EventOut)
def complete_event(event_id: str, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    return event_service.complete_event(db, event_id, admin)
