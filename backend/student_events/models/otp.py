"""One-time code ORM model: scoped to (email, purpose)."""
import enum
import uuid
from sqlalchemy import Column, String, Integer, Boolean, DateTime, ForeignKey, Index, Enum as SAEnum
from sqlalchemy.sql import func
from student_events.database import Base


class OTPPurpose(str, enum.Enum):
    registration = "registration"
    login = "login"
    password_reset = "password_reset"
    email_verification = "email_verification"


class OTP(Base):
    __tablename__ = "otps"

    otp_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(254), nullable=False)
    purpose = Column(SAEnum(OTPPurpose), nullable=False, default=OTPPurpose.registration)
    code = Column(String(8), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    attempts = Column(Integer, nullable=False, default=0)
    is_verified = Column(Boolean, nullable=False, default=False)
    user_id = Column(String(36), ForeignKey("users.user_id", ondelete="CASCADE"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("ix_otps_email_purpose", "email", "purpose"),
    )
