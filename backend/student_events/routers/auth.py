"""Auth API routes: registration with OTP activation, tokens, profile and password flows."""
import logging
from fastapi import APIRouter, BackgroundTasks, Depends, Request, status
from sqlalchemy.orm import Session

from student_events.config import settings
from student_events.database import get_db
from student_events.dependencies import get_current_user, get_email_sender
from student_events.limiter import limiter
from student_events.models.user import User
from student_events.schemas.user import (
    AccessToken,
    EmailRequest,
    LoginRequest,
    MessageOut,
    PasswordChange,
    PasswordReset,
    ProfileUpdate,
    RefreshTokenRequest,
    RegisterOut,
    RegisterRequest,
    TokenPair,
    UserOut,
    VerifyOTPRequest,
)
from student_events.security import create_access_token, create_refresh_token
from student_events.services import email_service, user_service
from student_events.services.email_service import EmailSender

logger = logging.getLogger(__name__)
router = APIRouter()


def _token_pair(user: User) -> TokenPair:
    return TokenPair(
        access_token=create_access_token(user.user_id, user.role.value),
        refresh_token=create_refresh_token(user.user_id),
        user=UserOut.model_validate(user),
    )


@router.post("/register", response_model=RegisterOut, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.RATE_LIMIT_AUTH)
def register(
    request: Request,
    payload: RegisterRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
):
    """Create an inactive account and email its verification code."""
    user, code = user_service.register(db, payload.model_dump())
    background_tasks.add_task(
        email_service.notify_registration_otp,
        sender, user.email, code, user.first_name, settings.OTP_TTL_MINUTES,
    )
    return RegisterOut(
        message="Registration successful. Please check your email for the verification code.",
        user_id=user.user_id,
        email=user.email,
    )


@router.post("/verify-otp", response_model=TokenPair)
@limiter.limit(settings.RATE_LIMIT_AUTH)
def verify_otp(request: Request, payload: VerifyOTPRequest, db: Session = Depends(get_db)):
    """Activate the account and log the user straight in."""
    user = user_service.verify_registration(db, payload.email, payload.otp)
    return _token_pair(user)


@router.post("/resend-otp", response_model=MessageOut)
@limiter.limit(settings.RATE_LIMIT_OTP)
def resend_otp(
    request: Request,
    payload: EmailRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
):
    user, code = user_service.resend_registration_otp(db, payload.email)
    background_tasks.add_task(
        email_service.notify_registration_otp,
        sender, user.email, code, user.first_name, settings.OTP_TTL_MINUTES,
    )
    return MessageOut(message="A new verification code has been sent to your email")


@router.post("/login", response_model=TokenPair)
@limiter.limit(settings.RATE_LIMIT_AUTH)
def login(request: Request, payload: LoginRequest, db: Session = Depends(get_db)):
    user = user_service.authenticate(db, payload.email, payload.password)
    return _token_pair(user)


@router.post("/refresh-token", response_model=AccessToken)
def refresh_token(payload: RefreshTokenRequest, db: Session = Depends(get_db)):
    user = user_service.user_for_refresh_token(db, payload.refresh_token)
    return AccessToken(access_token=create_access_token(user.user_id, user.role.value))


@router.post("/logout", response_model=MessageOut)
def logout(user: User = Depends(get_current_user)):
    """Tokens are stateless; the client discards them."""
    logger.info("User %s logged out", user.user_id)
    return MessageOut(message="Logged out successfully")


@router.get("/me", response_model=UserOut)
def me(user: User = Depends(get_current_user)):
    return user


@router.put("/update-profile", response_model=UserOut)
def update_profile(
    payload: ProfileUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return user_service.update_profile(db, user, payload.model_dump(exclude_unset=True))


@router.put("/change-password", response_model=MessageOut)
def change_password(
    payload: PasswordChange,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    user_service.change_password(db, user, payload.current_password, payload.new_password)
    return MessageOut(message="Password changed successfully")


@router.post("/request-password-reset", response_model=MessageOut)
@limiter.limit(settings.RATE_LIMIT_OTP)
def request_password_reset(
    request: Request,
    payload: EmailRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
):
    user, code = user_service.request_password_reset(db, payload.email)
    background_tasks.add_task(
        email_service.notify_password_reset_otp,
        sender, user.email, code, user.first_name, settings.OTP_TTL_MINUTES,
    )
    return MessageOut(message="Password reset code sent to your email")


@router.post("/reset-password", response_model=MessageOut)
@limiter.limit(settings.RATE_LIMIT_AUTH)
def reset_password(request: Request, payload: PasswordReset, db: Session = Depends(get_db)):
    user_service.reset_password(db, payload.email, payload.otp, payload.new_password)
    return MessageOut(message="Password reset successful. You can now log in with your new password.")
