"""Pydantic schemas for accounts, authentication and profiles."""
from __future__ import annotations
import re
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, EmailStr, Field, field_validator

from student_events.models.user import UserRole

OTP_PATTERN = r"^\d{4,8}$"


def _check_password_strength(value: str) -> str:
    if not re.search(r"[A-Z]", value):
        raise ValueError("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", value):
        raise ValueError("Password must contain at least one lowercase letter")
    if not re.search(r"\d", value):
        raise ValueError("Password must contain at least one number")
    return value


class RegisterRequest(BaseModel):
    first_name: str = Field(..., min_length=2, max_length=50)
    last_name: str = Field(..., min_length=2, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)
    student_id: Optional[str] = Field(None, pattern=r"^[A-Za-z0-9]+$", max_length=50)
    department: Optional[str] = Field(None, max_length=100)
    graduation_year: Optional[int] = Field(None, ge=2000, le=2100)

    @field_validator("first_name", "last_name", mode="before")
    @classmethod
    def strip_names(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("password")
    @classmethod
    def strong_password(cls, value: str) -> str:
        return _check_password_strength(value)


class VerifyOTPRequest(BaseModel):
    email: EmailStr
    otp: str = Field(..., pattern=OTP_PATTERN)


class EmailRequest(BaseModel):
    email: EmailStr


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class RefreshTokenRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class ProfileUpdate(BaseModel):
    first_name: Optional[str] = Field(None, min_length=2, max_length=50)
    last_name: Optional[str] = Field(None, min_length=2, max_length=50)
    department: Optional[str] = Field(None, max_length=100)
    graduation_year: Optional[int] = Field(None, ge=2000, le=2100)


class PasswordChange(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6, max_length=128)

    @field_validator("new_password")
    @classmethod
    def strong_password(cls, value: str) -> str:
        return _check_password_strength(value)


class PasswordReset(BaseModel):
    email: EmailStr
    otp: str = Field(..., pattern=OTP_PATTERN)
    new_password: str = Field(..., min_length=6, max_length=128)

    @field_validator("new_password")
    @classmethod
    def strong_password(cls, value: str) -> str:
        return _check_password_strength(value)


class UserOut(BaseModel):
    user_id: str
    first_name: str
    last_name: str
    email: str
    role: UserRole
    is_active: bool
    student_id: Optional[str] = None
    department: Optional[str] = None
    graduation_year: Optional[int] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    user: UserOut


class AccessToken(BaseModel):
    access_token: str
    token_type: str = "bearer"


class RegisterOut(BaseModel):
    message: str
    user_id: str
    email: str


class MessageOut(BaseModel):
    message: str
