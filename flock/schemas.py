from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .models import NAME_MAX_LENGTH, UO_ID_MAX_LENGTH
from .utils import normalize_free_text


# Members
class MemberCreate(BaseModel):
    name: str = Field(min_length=1)
    email: str = Field(max_length=255)
    uo_id: Optional[str] = Field(default=None, max_length=UO_ID_MAX_LENGTH)
    role_name: Optional[str] = Field(default=None, max_length=64)
    workplace_name: Optional[str] = Field(default=None, max_length=255)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        # Over-long names are clipped like check-in input, not rejected
        v = normalize_free_text(v, NAME_MAX_LENGTH)
        if not v:
            raise ValueError("Name is required")
        return v

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, v: str) -> str:
        v = v.strip().lower()
        if "@" not in v or v.startswith("@") or v.endswith("@"):
            raise ValueError("Invalid email address")
        return v

    @field_validator("uo_id")
    @classmethod
    def _blank_uo_id(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None


class MemberOut(BaseModel):
    id: int
    name: str
    email: str
    uo_id: Optional[str] = None
    role_name: Optional[str] = None
    workplace_name: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = dict(from_attributes=True)


class MemberProfile(BaseModel):
    id: int
    name: str
    email: str
    role_name: Optional[str] = None
    workplace_name: Optional[str] = None

    model_config = dict(from_attributes=True)


class MemberBrief(BaseModel):
    id: int
    name: str


# Events
class EventCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    event_date: datetime
    description: Optional[str] = None
    location: Optional[str] = Field(default=None, max_length=255)
    created_by: Optional[int] = None


class EventUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    event_date: Optional[datetime] = None
    description: Optional[str] = None
    location: Optional[str] = Field(default=None, max_length=255)


class EventOut(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    event_date: datetime
    location: Optional[str] = None
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None

    model_config = dict(from_attributes=True)


# Attendance / check-in
class CheckInRequest(BaseModel):
    member_id: Optional[int] = None
    name: Optional[str] = None
    uo_id: Optional[str] = None
    qr_code_token: Optional[str] = None


class AttendanceOut(BaseModel):
    id: int
    member_id: int
    event_id: int
    checked_in_at: datetime
    qr_code_token: Optional[str] = None

    model_config = dict(from_attributes=True)


class AttendanceRow(AttendanceOut):
    member_name: Optional[str] = None
    member_email: Optional[str] = None


class AttendanceSummary(BaseModel):
    attendance_count: int
    first_check_in: Optional[datetime] = None
    last_check_in: Optional[datetime] = None


class QRCodeOut(BaseModel):
    qr_code: str
    token: str
    check_in_url: str
    event_id: int
    expires_at: Optional[datetime] = None
    expires_in_seconds: Optional[int] = None


class CheckInInfoOut(BaseModel):
    event_id: int
    title: str
    event_date: datetime
    location: Optional[str] = None
    token_expires_at: Optional[datetime] = None


# Auth
class LoginRequest(BaseModel):
    email: Optional[str] = None


class VerifyRequest(BaseModel):
    idToken: Optional[str] = None
    token: Optional[str] = None
    email: Optional[str] = None
