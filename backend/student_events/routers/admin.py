"""Admin API routes: user management, system statistics, maintenance jobs."""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from student_events.database import get_db
from student_events.dependencies import require_admin
from student_events.models.user import User, UserRole
from student_events.schemas.admin import (
    ReconcileOut,
    SweepOut,
    SystemStatsOut,
    UserDetailOut,
    UserRoleUpdate,
    UserStatusUpdate,
)
from student_events.schemas.user import MessageOut, UserOut
from student_events.services import attendance, otp_service, user_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/users", response_model=list[UserOut])
def list_users(
    search: Optional[str] = Query(None, max_length=100),
    role: Optional[UserRole] = Query(None),
    is_active: Optional[bool] = Query(None),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return user_service.list_users(db, search=search, role=role, is_active=is_active)


@router.get("/users/{user_id}", response_model=UserDetailOut)
def get_user(user_id: str, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    user = user_service.get_user(db, user_id)
    return UserDetailOut(user=UserOut.model_validate(user), stats=user_service.user_activity(db, user_id))


@router.patch("/users/{user_id}/status", response_model=UserOut)
def update_user_status(
    user_id: str,
    payload: UserStatusUpdate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return user_service.set_active(db, admin, user_id, payload.is_active)


@router.patch("/users/{user_id}/role", response_model=UserOut)
def update_user_role(
    user_id: str,
    payload: UserRoleUpdate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return user_service.set_role(db, admin, user_id, payload.role)


@router.delete("/users/{user_id}", response_model=MessageOut)
def delete_user(user_id: str, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    """Delete an account together with its events, RSVPs and codes."""
    user_service.delete_user(db, admin, user_id)
    return MessageOut(message="User and associated data deleted successfully")


@router.get("/stats", response_model=SystemStatsOut)
def system_stats(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    return user_service.system_stats(db)


@router.post("/maintenance/sweep-otps", response_model=SweepOut)
def sweep_otps(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    """Delete every expired one-time code."""
    return SweepOut(removed=otp_service.sweep_expired(db))


@router.post("/maintenance/reconcile-attendance", response_model=ReconcileOut)
def reconcile_attendance(
    event_id: Optional[str] = Query(None),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Recompute cached attendee counters from the RSVP rows and fix any drift."""
    drift = attendance.reconcile(db, event_id)
    logger.info("Admin %s reconciled attendance: %d event(s) corrected", admin.user_id, len(drift))
    return ReconcileOut(corrected=[
        {"event_id": d.event_id, "cached": d.cached, "actual": d.actual} for d in drift
    ])
