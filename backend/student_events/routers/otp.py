"""Generic one-time code routes for login and email verification codes.

Registration and password-reset codes are only handled by their own auth
flows, so these endpoints refuse those purposes.
"""
import logging
from fastapi import APIRouter, BackgroundTasks, Depends, Request, status
from sqlalchemy.orm import Session

from student_events.config import settings
from student_events.database import get_db
from student_events.dependencies import get_email_sender
from student_events.errors import AppError
from student_events.limiter import limiter
from student_events.models.otp import OTPPurpose
from student_events.schemas.otp import OTPIssueOut, OTPIssueRequest, OTPValidateRequest, OTPValidationOut
from student_events.services import email_service, otp_service, user_service
from student_events.services.email_service import EmailSender

logger = logging.getLogger(__name__)
router = APIRouter()

GENERIC_PURPOSES = {OTPPurpose.login, OTPPurpose.email_verification}


def _check_purpose(purpose: OTPPurpose) -> None:
    if purpose not in GENERIC_PURPOSES:
        raise AppError(
            f"Codes for '{purpose.value}' are issued by their own flow",
            status.HTTP_400_BAD_REQUEST,
            "UNSUPPORTED_PURPOSE",
        )


@router.post("/issue", response_model=OTPIssueOut)
@limiter.limit(settings.RATE_LIMIT_OTP)
def issue_otp(
    request: Request,
    payload: OTPIssueRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
):
    """Issue a fresh code for an existing account; any earlier code for the same purpose stops working."""
    _check_purpose(payload.purpose)
    user = user_service.get_by_email(db, payload.email)
    code = otp_service.issue(db, user.email, payload.purpose, user_id=user.user_id)
    background_tasks.add_task(
        email_service.notify_otp,
        sender, user.email, code, payload.purpose.value, settings.OTP_TTL_MINUTES,
    )
    return OTPIssueOut(message="Code sent to your email", expires_in_minutes=settings.OTP_TTL_MINUTES)


@router.post("/validate", response_model=OTPValidationOut)
@limiter.limit(settings.RATE_LIMIT_AUTH)
def validate_otp(request: Request, payload: OTPValidateRequest, db: Session = Depends(get_db)):
    _check_purpose(payload.purpose)
    result = otp_service.validate(db, payload.email, payload.code, payload.purpose)
    return OTPValidationOut(
        accepted=result.accepted,
        reason=result.reason.value if result.reason else None,
        message=result.message,
    )
