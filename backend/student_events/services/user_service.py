"""Accounts: registration with OTP activation, login, password flows, admin user management."""
import logging
from typing import Any, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session
from fastapi import status

from student_events.database import atomic
from student_events.errors import AppError, ConflictError, NotFoundError
from student_events.models.event import Event
from student_events.models.otp import OTPPurpose
from student_events.models.rsvp import RSVP, RSVPStatus
from student_events.models.user import User, UserRole
from student_events.security import REFRESH, decode_token, hash_password, verify_password
from student_events.services import attendance, event_service, otp_service
from student_events.services.otp_service import OTPValidation

logger = logging.getLogger(__name__)

PROFILE_FIELDS = {"first_name", "last_name", "department", "graduation_year"}


def _normalize_email(email: str) -> str:
    return email.strip().lower()


def _raise_for_otp(result: OTPValidation) -> None:
    if not result.accepted:
        raise AppError(result.message, status.HTTP_400_BAD_REQUEST, result.reason.value)


def get_user(db: Session, user_id: str) -> User:
    user = db.query(User).filter(User.user_id == user_id).first()
    if not user:
        raise NotFoundError("User not found", "USER_NOT_FOUND")
    return user


def find_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == _normalize_email(email)).first()


def get_by_email(db: Session, email: str, message: str = "User not found") -> User:
    user = find_by_email(db, email)
    if not user:
        raise NotFoundError(message, "USER_NOT_FOUND")
    return user


# ---------------------------------------------------------------------------
# Registration and activation
# ---------------------------------------------------------------------------
def register(db: Session, data: dict[str, Any]) -> tuple[User, str]:
    """Create an inactive student account and issue its registration code."""
    email = _normalize_email(data["email"])
    if find_by_email(db, email):
        raise ConflictError("User already exists with this email", "USER_EXISTS")
    if data.get("student_id") and db.query(User).filter(User.student_id == data["student_id"]).first():
        raise ConflictError("Student ID is already registered", "STUDENT_ID_EXISTS")

    user = User(
        first_name=data["first_name"],
        last_name=data["last_name"],
        email=email,
        password_hash=hash_password(data["password"]),
        role=UserRole.student,
        is_active=False,
        student_id=data.get("student_id"),
        department=data.get("department"),
        graduation_year=data.get("graduation_year"),
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    code = otp_service.issue(db, email, OTPPurpose.registration, user_id=user.user_id)
    logger.info("Registered user %s (%s), awaiting verification", user.user_id, email)
    return user, code


def verify_registration(db: Session, email: str, code: str) -> User:
    result = otp_service.validate(db, email, code, OTPPurpose.registration)
    _raise_for_otp(result)

    user = get_by_email(db, email)
    user.is_active = True
    db.commit()
    db.refresh(user)
    logger.info("Activated user %s", user.user_id)
    return user


def resend_registration_otp(db: Session, email: str) -> tuple[User, str]:
    user = get_by_email(db, email)
    if user.is_active:
        raise AppError("Account is already verified", status.HTTP_400_BAD_REQUEST, "ACCOUNT_ALREADY_ACTIVE")
    code = otp_service.issue(db, user.email, OTPPurpose.registration, user_id=user.user_id)
    return user, code


# ---------------------------------------------------------------------------
# Sessions and credentials
# ---------------------------------------------------------------------------
def authenticate(db: Session, email: str, password: str) -> User:
    user = find_by_email(db, email)
    if not user:
        raise AppError("Invalid email or password", status.HTTP_401_UNAUTHORIZED, "INVALID_CREDENTIALS")
    if not user.is_active:
        raise AppError(
            "Account not activated. Please verify your email.",
            status.HTTP_403_FORBIDDEN,
            "ACCOUNT_INACTIVE",
        )
    if not verify_password(password, user.password_hash):
        logger.info("Failed login for %s", user.email)
        raise AppError("Invalid email or password", status.HTTP_401_UNAUTHORIZED, "INVALID_CREDENTIALS")
    logger.info("User %s logged in", user.user_id)
    return user


def user_for_refresh_token(db: Session, refresh_token: str) -> User:
    claims = decode_token(refresh_token, REFRESH)
    user = db.query(User).filter(User.user_id == claims["sub"]).first()
    if not user or not user.is_active:
        raise AppError("User not found or inactive", status.HTTP_401_UNAUTHORIZED, "USER_INVALID")
    return user


def update_profile(db: Session, user: User, updates: dict[str, Any]) -> User:
    for field, value in updates.items():
        if field in PROFILE_FIELDS and value is not None:
            setattr(user, field, value)
    db.commit()
    db.refresh(user)
    logger.info("Updated profile of %s", user.user_id)
    return user


def change_password(db: Session, user: User, current_password: str, new_password: str) -> None:
    if not verify_password(current_password, user.password_hash):
        raise AppError("Current password is incorrect", status.HTTP_401_UNAUTHORIZED, "INVALID_PASSWORD")
    user.password_hash = hash_password(new_password)
    db.commit()
    logger.info("Password changed for %s", user.user_id)


def request_password_reset(db: Session, email: str) -> tuple[User, str]:
    user = get_by_email(db, email, "No account found with this email")
    code = otp_service.issue(db, user.email, OTPPurpose.password_reset, user_id=user.user_id)
    return user, code


def reset_password(db: Session, email: str, code: str, new_password: str) -> User:
    result = otp_service.validate(db, email, code, OTPPurpose.password_reset)
    _raise_for_otp(result)

    user = get_user(db, result.user_id) if result.user_id else get_by_email(db, email)
    user.password_hash = hash_password(new_password)
    db.commit()
    logger.info("Password reset for %s", user.user_id)
    return user


# ---------------------------------------------------------------------------
# Admin user management
# ---------------------------------------------------------------------------
def list_users(
    db: Session,
    search: Optional[str] = None,
    role: Optional[UserRole] = None,
    is_active: Optional[bool] = None,
) -> list[User]:
    query = db.query(User)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            User.first_name.ilike(pattern),
            User.last_name.ilike(pattern),
            User.email.ilike(pattern),
            User.student_id.ilike(pattern),
        ))
    if role:
        query = query.filter(User.role == role)
    if is_active is not None:
        query = query.filter(User.is_active.is_(is_active))
    return query.order_by(User.created_at.desc()).all()


def user_activity(db: Session, user_id: str) -> dict[str, int]:
    events_created = db.query(func.count(Event.event_id)).filter(Event.created_by == user_id).scalar()
    attending = db.query(func.count(RSVP.rsvp_id)).filter(
        RSVP.user_id == user_id,
        RSVP.status == RSVPStatus.attending,
    ).scalar()
    return {"events_created": events_created or 0, "attending_rsvps": attending or 0}


def _reject_self(actor: User, user_id: str, action: str) -> None:
    if actor.user_id == user_id:
        raise AppError(f"You cannot {action} your own account", status.HTTP_400_BAD_REQUEST, "CANNOT_MODIFY_SELF")


def set_active(db: Session, actor: User, user_id: str, is_active: bool) -> User:
    _reject_self(actor, user_id, "change the status of")
    user = get_user(db, user_id)
    user.is_active = is_active
    db.commit()
    db.refresh(user)
    logger.info("Admin %s set is_active=%s on %s", actor.user_id, is_active, user_id)
    return user


def set_role(db: Session, actor: User, user_id: str, role: UserRole) -> User:
    """Change a role. Promotion to admin cancels the user's attending RSVPs and frees their seats."""
    _reject_self(actor, user_id, "change the role of")
    released = 0
    with atomic(db):
        user = get_user(db, user_id)
        if role == UserRole.admin and user.role != UserRole.admin:
            released = attendance.release_user_attendance(db, user_id)
        user.role = role
    db.refresh(user)
    logger.info(
        "Admin %s set role=%s on %s (%d attending RSVPs cancelled)",
        actor.user_id, role.value, user_id, released,
    )
    return user


def delete_user(db: Session, actor: User, user_id: str) -> None:
    """Remove an account with its events, RSVPs and codes, giving back the seats it held elsewhere."""
    _reject_self(actor, user_id, "delete")
    user = get_user(db, user_id)

    released = attendance.release_user_attendance(db, user_id)
    owned_events = db.query(Event).filter(Event.created_by == user_id).all()
    for event in owned_events:
        db.delete(event)
    db.flush()
    db.query(RSVP).filter(RSVP.user_id == user_id).delete(synchronize_session=False)
    otp_service.discard_for_email(db, user.email)
    db.delete(user)
    db.commit()
    logger.info(
        "Admin %s deleted user %s (%d events, %d attending RSVPs released)",
        actor.user_id, user_id, len(owned_events), released,
    )


def system_stats(db: Session) -> dict[str, Any]:
    user_total = db.query(func.count(User.user_id)).scalar() or 0
    user_active = db.query(func.count(User.user_id)).filter(User.is_active.is_(True)).scalar() or 0
    admins = db.query(func.count(User.user_id)).filter(User.role == UserRole.admin).scalar() or 0
    rsvp_counts = dict(db.query(RSVP.status, func.count(RSVP.rsvp_id)).group_by(RSVP.status).all())

    return {
        "users": {
            "total": user_total,
            "active": user_active,
            "students": user_total - admins,
            "admins": admins,
        },
        "events": event_service.event_stats(db),
        "rsvps": {
            "total": sum(rsvp_counts.values()),
            "attending": rsvp_counts.get(RSVPStatus.attending, 0),
            "cancelled": rsvp_counts.get(RSVPStatus.cancelled, 0),
        },
    }
