"""Pydantic schemas for the generic one-time code endpoints."""
from __future__ import annotations
from typing import Optional
from pydantic import BaseModel, EmailStr, Field

from student_events.models.otp import OTPPurpose
from student_events.schemas.user import OTP_PATTERN


class OTPIssueRequest(BaseModel):
    email: EmailStr
    purpose: OTPPurpose


class OTPValidateRequest(BaseModel):
    email: EmailStr
    code: str = Field(..., pattern=OTP_PATTERN)
    purpose: OTPPurpose


class OTPIssueOut(BaseModel):
    message: str
    expires_in_minutes: int


class OTPValidationOut(BaseModel):
    accepted: bool
    reason: Optional[str] = None
    message: str
