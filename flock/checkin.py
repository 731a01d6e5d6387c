from __future__ import annotations

"""
Check-in orchestration.

A request moves through: event id parsing, event lookup, credential check,
member resolution, duplicate pre-check, insert, confirmation email. The
pre-check is optimistic; the unique constraint on (member_id, event_id) is
authoritative, and losing that race is reported exactly like the pre-check.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from fastapi import BackgroundTasks
from sqlalchemy import and_, exists, select
from sqlalchemy.exc import DataError, IntegrityError, OperationalError
from sqlalchemy.orm import Session

from . import identity
from .errors import AuthenticationError, ConflictError, CredentialError, NotFoundError, UnavailableError, ValidationError
from .mailer import EventDetails, MemberContact, Notifier
from .models import QR_TOKEN_MAX_LENGTH, Attendance, Event, Member
from .tokens import CheckInTokenCodec
from .utils import token_preview


logger = logging.getLogger("flock.checkin")

ALREADY_CHECKED_IN = "You have already checked in to this event"
TOKEN_REQUIRED = "QR code token is required. Please scan the QR code again."
MEMBER_NOT_FOUND = (
    "Member not found. Please verify your name matches the name in the system. "
    "The name matching is case-insensitive and handles spacing variations."
)


@dataclass
class CheckInResult:
    attendance: Attendance
    member_id: int
    member_name: str


def parse_event_id(raw: Any) -> int:
    if isinstance(raw, bool):
        raise ValidationError(f"Invalid event ID: {raw}. Please scan the QR code again.")
    if isinstance(raw, int):
        value = raw
    else:
        text = str(raw).strip() if raw is not None else ""
        if not text.isdigit():
            raise ValidationError(f"Invalid event ID: {raw}. Please scan the QR code again.")
        value = int(text)
    if value <= 0:
        raise ValidationError(f"Invalid event ID: {raw}. Please scan the QR code again.")
    return value


def attendance_exists(db: Session, member_id: int, event_id: int) -> bool:
    stmt = select(exists().where(and_(Attendance.member_id == member_id, Attendance.event_id == event_id)))
    return bool(db.execute(stmt).scalar())


class CheckInService:
    def __init__(self, codec: CheckInTokenCodec, notifier: Notifier, token_storage_limit: int = QR_TOKEN_MAX_LENGTH) -> None:
        self.codec = codec
        self.notifier = notifier
        self.token_storage_limit = min(token_storage_limit, QR_TOKEN_MAX_LENGTH)

    def check_in(
        self,
        db: Session,
        raw_event_id: Any,
        *,
        member_id: Optional[int] = None,
        name: Optional[str] = None,
        uo_id: Optional[str] = None,
        qr_code_token: Optional[str] = None,
        is_admin: bool = False,
        background_tasks: Optional[BackgroundTasks] = None,
    ) -> CheckInResult:
        event_id = parse_event_id(raw_event_id)
        logger.info(
            "Check-in request event=%s has_name=%s has_member_id=%s has_token=%s",
            event_id,
            name is not None,
            member_id is not None,
            bool(qr_code_token),
        )
        try:
            event = db.get(Event, event_id)
            if event is None:
                raise NotFoundError("Event not found")

            token = qr_code_token.strip() if isinstance(qr_code_token, str) else ""
            if member_id is not None:
                member = self._resolve_direct(db, event_id, member_id, token, is_admin)
            elif name is not None:
                member = self._resolve_self_service(db, event_id, name, uo_id, token)
            else:
                raise ValidationError("Either member_id or name is required")

            if attendance_exists(db, member.id, event_id):
                raise ConflictError(ALREADY_CHECKED_IN)

            record = self._persist(db, member.id, event_id, token)
            contact = MemberContact.of(member)
            details = EventDetails.of(event)
        except OperationalError as exc:
            db.rollback()
            logger.error("Database unavailable during check-in for event %s: %s", event_id, exc)
            raise UnavailableError("Database connection error. Please try again later.") from exc

        logger.info("Checked in member=%s event=%s attendance=%s", contact.id, event_id, record.id)
        if background_tasks is not None:
            background_tasks.add_task(self._notify, contact, details)
        else:
            self._notify(contact, details)
        return CheckInResult(attendance=record, member_id=contact.id, member_name=contact.name)

    def _resolve_direct(self, db: Session, event_id: int, member_id: int, token: str, is_admin: bool) -> Member:
        if not is_admin:
            raise AuthenticationError("Admin token required to check in by member id")
        # Credential is optional on this path, but a supplied one must be valid
        if token:
            self.codec.verify(token, event_id)
        member = db.get(Member, member_id)
        if member is None:
            raise NotFoundError("Member not found")
        return member

    def _resolve_self_service(self, db: Session, event_id: int, name: Any, uo_id: Any, token: str) -> Member:
        normalized = identity.normalize_name(name)
        if not normalized:
            raise ValidationError("Name is required")
        # Fail fast: no identity lookup without a valid credential for this event
        if not token:
            raise ValidationError(TOKEN_REQUIRED)
        try:
            self.codec.verify(token, event_id)
        except CredentialError as exc:
            logger.info("Credential rejected for event %s (%s) token=%s", event_id, type(exc).__name__, token_preview(token))
            raise
        member = identity.find_for_checkin(db, normalized, uo_id)
        if member is None:
            logger.info("No unique member for name (length=%d) at event %s", len(normalized), event_id)
            raise NotFoundError(MEMBER_NOT_FOUND)
        return member

    def _persist(self, db: Session, member_id: int, event_id: int, token: str) -> Attendance:
        stored_token = token[: self.token_storage_limit] if token else None
        if token and len(token) > self.token_storage_limit:
            logger.warning("QR token truncated from %d to %d characters", len(token), self.token_storage_limit)
        record = Attendance(member_id=member_id, event_id=event_id, qr_code_token=stored_token)
        db.add(record)
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            if attendance_exists(db, member_id, event_id):
                logger.info("Duplicate check-in caught by constraint member=%s event=%s", member_id, event_id)
                raise ConflictError(ALREADY_CHECKED_IN) from exc
            logger.error("Integrity error recording check-in member=%s event=%s: %s", member_id, event_id, exc)
            raise ValidationError("Invalid member or event reference") from exc
        except DataError as exc:
            db.rollback()
            logger.error("Value too long recording check-in member=%s event=%s: %s", member_id, event_id, exc)
            raise ValidationError("Input value is too long.") from exc
        db.refresh(record)
        return record

    def _notify(self, member: MemberContact, event: EventDetails) -> None:
        try:
            self.notifier.send_checkin_confirmation(member, event)
        except Exception:
            logger.exception("Failed to send check-in confirmation to member %s", member.id)
