from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from ..deps import get_db, get_notifier, require_token
from ..errors import NotFoundError
from ..mailer import Notifier
from ..members import create_member
from ..models import Member
from ..schemas import MemberCreate, MemberOut


router = APIRouter(prefix="/members", tags=["members"], dependencies=[Depends(require_token)])


@router.post("", status_code=201)
def members_create(
    payload: MemberCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
) -> dict:
    member = create_member(db, payload, notifier=notifier, background_tasks=background_tasks)
    return {"success": True, "message": "Member created", "data": {"member": MemberOut.model_validate(member)}}


@router.get("")
def members_list(
    db: Session = Depends(get_db),
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    search: Optional[str] = None,
) -> dict:
    stmt = select(Member)
    if search:
        stmt = stmt.where(or_(Member.name.ilike(f"%{search}%"), Member.email.ilike(f"%{search}%")))
    members = db.execute(stmt.order_by(Member.name).offset(offset).limit(limit)).scalars().all()
    return {
        "success": True,
        "data": {"members": [MemberOut.model_validate(m) for m in members]},
        "count": len(members),
    }


@router.get("/{member_id}")
def members_get(member_id: int, db: Session = Depends(get_db)) -> dict:
    member = db.get(Member, member_id)
    if member is None:
        raise NotFoundError("Member not found")
    return {"success": True, "data": {"member": MemberOut.model_validate(member)}}
