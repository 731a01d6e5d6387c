from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, validates

from .database import Base
from .utils import name_match_key


# Column limits shared with input normalization
NAME_MAX_LENGTH = 100
UO_ID_MAX_LENGTH = 20
QR_TOKEN_MAX_LENGTH = 500


class Member(Base):
    __tablename__ = "members"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(NAME_MAX_LENGTH), nullable=False)
    # Match key for name lookups; casefold() can lengthen a name, so allow extra room
    name_key: Mapped[str] = mapped_column(String(NAME_MAX_LENGTH * 3), nullable=False, index=True)
    uo_id: Mapped[Optional[str]] = mapped_column(String(UO_ID_MAX_LENGTH), nullable=True, unique=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    role_name: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    workplace_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    __table_args__ = (
        Index("ix_members_name", "name"),
    )

    @validates("name")
    def _sync_name_key(self, key: str, value: str) -> str:
        self.name_key = name_match_key(value or "")
        return value


class Event(Base):
    __tablename__ = "events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    event_date: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_by: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("members.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Attendance(Base):
    __tablename__ = "attendance"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    member_id: Mapped[int] = mapped_column(Integer, ForeignKey("members.id", ondelete="CASCADE"), nullable=False)
    event_id: Mapped[int] = mapped_column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    checked_in_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    qr_code_token: Mapped[Optional[str]] = mapped_column(String(QR_TOKEN_MAX_LENGTH), nullable=True)

    # One check-in per member per event; the final arbiter under concurrent submissions
    __table_args__ = (
        UniqueConstraint("member_id", "event_id", name="uq_attendance_member_event"),
        Index("ix_attendance_event", "event_id"),
    )
