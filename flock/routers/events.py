from __future__ import annotations

import math
import time
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Response
from sqlalchemy import delete, func, or_, select
from sqlalchemy.orm import Session

from ..checkin import CheckInService
from ..config import get_settings
from ..deps import get_checkin_service, get_codec, get_db, is_admin, require_token
from ..errors import NotFoundError, ValidationError
from ..models import Attendance, Event, Member
from ..qr import check_in_url, render_data_url, render_png
from ..rate_limit import rate_limited
from ..schemas import (
    AttendanceOut,
    AttendanceRow,
    AttendanceSummary,
    CheckInInfoOut,
    CheckInRequest,
    EventCreate,
    EventOut,
    EventUpdate,
    MemberBrief,
    QRCodeOut,
)
from ..tokens import CheckInTokenCodec


router = APIRouter(prefix="/events", tags=["events"], dependencies=[Depends(require_token)])
public_router = APIRouter(prefix="/events", tags=["checkin"])


def _get_event(db: Session, event_id: int) -> Event:
    event = db.get(Event, event_id)
    if event is None:
        raise NotFoundError("Event not found")
    return event


def _parse_expiration_hours(raw: Optional[str]) -> Optional[float]:
    if raw is None or raw == "":
        return None
    try:
        hours = float(raw)
    except ValueError:
        raise ValidationError("Invalid expiration_hours parameter")
    if not math.isfinite(hours) or hours <= 0:
        raise ValidationError("Invalid expiration_hours parameter")
    return hours


def _attendance_rows(db: Session, event_id: int) -> List[AttendanceRow]:
    rows = db.execute(
        select(Attendance, Member.name, Member.email)
        .join(Member, Member.id == Attendance.member_id)
        .where(Attendance.event_id == event_id)
        .order_by(Attendance.checked_in_at.asc())
    ).all()
    return [
        AttendanceRow(
            id=a.id,
            member_id=a.member_id,
            event_id=a.event_id,
            checked_in_at=a.checked_in_at,
            qr_code_token=a.qr_code_token,
            member_name=name,
            member_email=email,
        )
        for a, name, email in rows
    ]


@router.post("", status_code=201)
def events_create(payload: EventCreate, db: Session = Depends(get_db)) -> dict:
    if payload.created_by is not None and not db.get(Member, payload.created_by):
        raise ValidationError("Invalid creator ID")
    event = Event(
        title=payload.title,
        description=payload.description,
        event_date=payload.event_date,
        location=payload.location,
        created_by=payload.created_by,
    )
    db.add(event)
    db.commit()
    db.refresh(event)
    return {"success": True, "message": "Event created successfully", "data": {"event": EventOut.model_validate(event)}}


@router.get("")
def events_list(
    db: Session = Depends(get_db),
    upcoming: bool = False,
    past: bool = False,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    created_by: Optional[int] = None,
    search: Optional[str] = None,
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    offset: Optional[int] = Query(default=None, ge=0),
) -> dict:
    now = datetime.utcnow()
    stmt = select(Event)
    if upcoming:
        stmt = stmt.where(Event.event_date >= now)
    if past:
        stmt = stmt.where(Event.event_date < now)
    if date_from:
        stmt = stmt.where(Event.event_date >= date_from)
    if date_to:
        stmt = stmt.where(Event.event_date <= date_to)
    if created_by is not None:
        stmt = stmt.where(Event.created_by == created_by)
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(
            or_(Event.title.ilike(pattern), Event.description.ilike(pattern), Event.location.ilike(pattern))
        )
    stmt = stmt.order_by(Event.event_date.asc() if upcoming else Event.event_date.desc())
    if offset:
        stmt = stmt.offset(offset)
    if limit:
        stmt = stmt.limit(limit)
    events = db.execute(stmt).scalars().all()
    return {"success": True, "data": {"events": [EventOut.model_validate(e) for e in events]}, "count": len(events)}


@router.get("/upcoming")
def events_upcoming(db: Session = Depends(get_db), limit: int = Query(default=10, ge=1, le=100)) -> dict:
    stmt = (
        select(Event)
        .where(Event.event_date >= datetime.utcnow())
        .order_by(Event.event_date.asc())
        .limit(limit)
    )
    events = db.execute(stmt).scalars().all()
    return {"success": True, "data": {"events": [EventOut.model_validate(e) for e in events]}, "count": len(events)}


@router.get("/{event_id}")
def events_get(event_id: int, db: Session = Depends(get_db)) -> dict:
    event = _get_event(db, event_id)
    attendance = _attendance_rows(db, event_id)
    return {
        "success": True,
        "data": {"event": EventOut.model_validate(event), "attendance": attendance, "attendance_count": len(attendance)},
    }


@router.put("/{event_id}")
def events_update(event_id: int, payload: EventUpdate, db: Session = Depends(get_db)) -> dict:
    event = _get_event(db, event_id)
    for field in ["title", "event_date", "description", "location"]:
        value = getattr(payload, field)
        if value is not None:
            setattr(event, field, value)
    db.add(event)
    db.commit()
    db.refresh(event)
    return {"success": True, "message": "Event updated successfully", "data": {"event": EventOut.model_validate(event)}}


@router.delete("/{event_id}")
def events_delete(event_id: int, db: Session = Depends(get_db)) -> dict:
    event = _get_event(db, event_id)
    out = EventOut.model_validate(event)
    db.execute(delete(Attendance).where(Attendance.event_id == event_id))
    db.delete(event)
    db.commit()
    return {"success": True, "message": "Event deleted successfully", "data": {"event": out}}


@router.get("/{event_id}/attendance")
def events_attendance(event_id: int, db: Session = Depends(get_db)) -> dict:
    event = _get_event(db, event_id)
    attendance = _attendance_rows(db, event_id)
    first, last = db.execute(
        select(func.min(Attendance.checked_in_at), func.max(Attendance.checked_in_at)).where(
            Attendance.event_id == event_id
        )
    ).one()
    summary = AttendanceSummary(attendance_count=len(attendance), first_check_in=first, last_check_in=last)
    return {
        "success": True,
        "data": {
            "event": EventOut.model_validate(event),
            "attendance": attendance,
            "summary": summary,
            "attendance_count": len(attendance),
        },
    }


@router.get("/{event_id}/qrcode")
def events_qrcode(
    event_id: int,
    expiration_hours: Optional[str] = None,
    db: Session = Depends(get_db),
    codec: CheckInTokenCodec = Depends(get_codec),
) -> dict:
    event = _get_event(db, event_id)
    hours = _parse_expiration_hours(expiration_hours)
    token = codec.issue(event.id, hours)
    url = check_in_url(get_settings().frontend_base, event.id, token)
    expires_at = codec.expiration_of(token)
    expires_in = int(expires_at.timestamp() - time.time()) if expires_at else None
    data = QRCodeOut(
        qr_code=render_data_url(url),
        token=token,
        check_in_url=url,
        event_id=event.id,
        expires_at=expires_at,
        expires_in_seconds=expires_in,
    )
    return {"success": True, "data": data}


@router.get("/{event_id}/qrcode.png")
def events_qrcode_png(
    event_id: int,
    expiration_hours: Optional[str] = None,
    db: Session = Depends(get_db),
    codec: CheckInTokenCodec = Depends(get_codec),
) -> Response:
    event = _get_event(db, event_id)
    hours = _parse_expiration_hours(expiration_hours)
    token = codec.issue(event.id, hours)
    url = check_in_url(get_settings().frontend_base, event.id, token)
    return Response(
        content=render_png(url),
        media_type="image/png",
        headers={"Content-Disposition": f'inline; filename="qr-code-event-{event.id}.png"'},
    )


@public_router.get("/{event_id}/checkin-info")
def checkin_info(
    event_id: int,
    token: Optional[str] = None,
    db: Session = Depends(get_db),
    codec: CheckInTokenCodec = Depends(get_codec),
) -> dict:
    event = _get_event(db, event_id)
    # Display only: the countdown shown on the check-in page, never an authorization decision
    expires_at = codec.expiration_of(token) if token else None
    data = CheckInInfoOut(
        event_id=event.id,
        title=event.title,
        event_date=event.event_date,
        location=event.location,
        token_expires_at=expires_at,
    )
    return {"success": True, "data": data}


@public_router.post("/{event_id}/checkin", status_code=201, dependencies=[Depends(rate_limited("events.checkin"))])
def checkin(
    event_id: str,
    payload: CheckInRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    admin: bool = Depends(is_admin),
    service: CheckInService = Depends(get_checkin_service),
) -> dict:
    result = service.check_in(
        db,
        event_id,
        member_id=payload.member_id,
        name=payload.name,
        uo_id=payload.uo_id,
        qr_code_token=payload.qr_code_token,
        is_admin=admin,
        background_tasks=background_tasks,
    )
    return {
        "success": True,
        "message": "Check-in successful",
        "data": {
            "checkIn": AttendanceOut.model_validate(result.attendance),
            "member": MemberBrief(id=result.member_id, name=result.member_name),
        },
    }
