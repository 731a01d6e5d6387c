from __future__ import annotations

import logging
from typing import Optional

from fastapi import BackgroundTasks
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .errors import ConflictError
from .mailer import MemberContact, Notifier
from .models import Member
from .schemas import MemberCreate


logger = logging.getLogger("flock.members")


def create_member(
    db: Session,
    payload: MemberCreate,
    notifier: Optional[Notifier] = None,
    background_tasks: Optional[BackgroundTasks] = None,
) -> Member:
    if db.execute(select(Member.id).where(Member.email == payload.email)).first():
        raise ConflictError("Email already exists")
    if payload.uo_id and db.execute(select(Member.id).where(Member.uo_id == payload.uo_id)).first():
        raise ConflictError("UO ID already exists")

    member = Member(
        name=payload.name,
        email=payload.email,
        uo_id=payload.uo_id,
        role_name=payload.role_name,
        workplace_name=payload.workplace_name,
    )
    db.add(member)
    try:
        db.commit()
    except IntegrityError as exc:
        # Lost a race against a concurrent registration with the same email or UO ID
        db.rollback()
        raise ConflictError("Member already exists") from exc
    db.refresh(member)
    logger.info("Registered member %s", member.id)

    if notifier is not None:
        contact = MemberContact.of(member)
        if background_tasks is not None:
            background_tasks.add_task(_send_welcome, notifier, contact)
        else:
            _send_welcome(notifier, contact)
    return member


def _send_welcome(notifier: Notifier, member: MemberContact) -> None:
    try:
        notifier.send_member_welcome(member)
    except Exception:
        logger.exception("Failed to send welcome email to member %s", member.id)
