"""OTP ledger: issue and validate short-lived numeric codes.

Records are scoped to ``(email, purpose)`` and at most one exists per pair:
issuing deletes whatever was there before, so an older code can never
validate once a newer one has been sent.

Validation order matters and is fixed:
1. no unverified record          -> NOT_FOUND
2. ``now > expires_at``           -> EXPIRED (attempts untouched)
3. ``attempts >= max`` (pre-incr) -> ATTEMPTS_EXCEEDED
4. increment attempts, compare    -> INVALID_CODE or accepted
"""
import enum
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from student_events.config import settings
from student_events.models.otp import OTP, OTPPurpose
from student_events.timeutils import as_utc, utcnow

logger = logging.getLogger(__name__)


class OTPFailure(str, enum.Enum):
    not_found = "NOT_FOUND"
    expired = "EXPIRED"
    attempts_exceeded = "ATTEMPTS_EXCEEDED"
    invalid_code = "INVALID_CODE"


FAILURE_MESSAGES = {
    OTPFailure.not_found: "OTP not found or already verified",
    OTPFailure.expired: "OTP has expired",
    OTPFailure.attempts_exceeded: "Maximum verification attempts exceeded",
    OTPFailure.invalid_code: "Invalid OTP code",
}


@dataclass
class OTPValidation:
    accepted: bool
    reason: Optional[OTPFailure] = None
    user_id: Optional[str] = None

    @property
    def message(self) -> str:
        if self.accepted:
            return "OTP verified successfully"
        return FAILURE_MESSAGES[self.reason]


def generate_code(length: Optional[int] = None) -> str:
    length = length or settings.OTP_LENGTH
    return "".join(str(secrets.randbelow(10)) for _ in range(length))


def issue(
    db: Session,
    email: str,
    purpose: OTPPurpose,
    user_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> str:
    """Replace any code for ``(email, purpose)`` with a fresh one and return it."""
    now = as_utc(now) if now else utcnow()
    email = email.strip().lower()

    db.query(OTP).filter(OTP.email == email, OTP.purpose == purpose).delete(synchronize_session=False)
    # Lazy cleanup of other pairs' stale codes
    db.query(OTP).filter(OTP.expires_at < now).delete(synchronize_session=False)

    code = generate_code()
    db.add(OTP(
        email=email,
        purpose=purpose,
        code=code,
        user_id=user_id,
        expires_at=now + timedelta(minutes=settings.OTP_TTL_MINUTES),
        attempts=0,
        is_verified=False,
    ))
    db.commit()
    logger.info("Issued %s OTP for %s", purpose.value, email)
    return code


def validate(
    db: Session,
    email: str,
    code: str,
    purpose: OTPPurpose,
    now: Optional[datetime] = None,
) -> OTPValidation:
    now = as_utc(now) if now else utcnow()
    email = email.strip().lower()

    record = (
        db.query(OTP)
        .filter(OTP.email == email, OTP.purpose == purpose, OTP.is_verified.is_(False))
        .order_by(OTP.created_at.desc())
        .first()
    )
    if not record:
        return OTPValidation(accepted=False, reason=OTPFailure.not_found)

    if now > as_utc(record.expires_at):
        logger.info("Expired %s OTP presented for %s", purpose.value, email)
        return OTPValidation(accepted=False, reason=OTPFailure.expired)

    if record.attempts >= settings.OTP_MAX_ATTEMPTS:
        logger.warning("OTP attempt cap reached for %s (%s)", email, purpose.value)
        return OTPValidation(accepted=False, reason=OTPFailure.attempts_exceeded)

    record.attempts += 1
    if not secrets.compare_digest(record.code.encode(), str(code).encode()):
        db.commit()
        logger.info("Wrong %s OTP for %s (attempt %d)", purpose.value, email, record.attempts)
        return OTPValidation(accepted=False, reason=OTPFailure.invalid_code)

    record.is_verified = True
    db.commit()
    logger.info("Verified %s OTP for %s", purpose.value, email)
    return OTPValidation(accepted=True, user_id=record.user_id)


def sweep_expired(db: Session, now: Optional[datetime] = None) -> int:
    """Delete every record whose window has passed. Returns the number removed."""
    now = as_utc(now) if now else utcnow()
    removed = db.query(OTP).filter(OTP.expires_at < now).delete(synchronize_session=False)
    db.commit()
    logger.info("Swept %d expired OTP records", removed)
    return removed


def discard_for_email(db: Session, email: str) -> int:
    """Remove every code for ``email`` (account deletion). Caller commits."""
    return db.query(OTP).filter(OTP.email == email.strip().lower()).delete(synchronize_session=False)
