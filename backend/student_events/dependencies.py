"""Request-scoped dependencies: the caller's identity and the email sender."""
import logging
from typing import Optional

from fastapi import Depends, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from student_events.database import get_db
from student_events.errors import AppError, PermissionDeniedError
from student_events.models.user import User
from student_events.security import decode_token
from student_events.services.email_service import EmailSender

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def _resolve_user(db: Session, token: str) -> User:
    claims = decode_token(token)
    user = db.query(User).filter(User.user_id == claims["sub"]).first()
    if not user:
        raise AppError("User belonging to this token no longer exists.", status.HTTP_401_UNAUTHORIZED, "USER_NOT_FOUND")
    if not user.is_active:
        raise PermissionDeniedError("Account is not active. Please verify your email.", "ACCOUNT_INACTIVE")
    return user


def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> User:
    if not token:
        raise AppError("You are not logged in. Please log in to get access.", status.HTTP_401_UNAUTHORIZED, "NO_TOKEN")
    return _resolve_user(db, token)


def get_optional_user(
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> Optional[User]:
    """Like ``get_current_user`` but anonymous callers get ``None`` instead of a 401."""
    if not token:
        return None
    return _resolve_user(db, token)


def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        logger.warning("Non-admin %s attempted an admin operation", user.user_id)
        raise PermissionDeniedError(
            "You do not have permission to perform this action. Admin access required.",
            "ADMIN_REQUIRED",
        )
    return user


def get_email_sender(request: Request) -> EmailSender:
    return request.app.state.email_sender
