from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session

from ..auth import MagicLinkAuth
from ..deps import get_auth_service, get_db, get_notifier
from ..mailer import Notifier
from ..members import create_member
from ..rate_limit import rate_limited
from ..schemas import LoginRequest, MemberCreate, MemberOut, MemberProfile, VerifyRequest


router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", dependencies=[Depends(rate_limited("auth.login"))])
def login(
    payload: LoginRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    auth: MagicLinkAuth = Depends(get_auth_service),
) -> dict:
    message = auth.request_login(db, payload.email, background_tasks=background_tasks)
    return {"success": True, "message": message}


@router.post("/verify", dependencies=[Depends(rate_limited("auth.verify"))])
def verify(
    payload: VerifyRequest,
    token: Optional[str] = Query(default=None),
    email: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
    auth: MagicLinkAuth = Depends(get_auth_service),
) -> dict:
    # Dev links land on /verify?token=..&email=..; accept the same fields from the query string
    session = auth.verify_login(
        db,
        id_token=payload.idToken,
        dev_token=payload.token or token,
        email=payload.email or email,
    )
    return {
        "success": True,
        "message": "Login successful",
        "data": {"token": session.token, "member": MemberProfile.model_validate(session.member)},
    }


@router.post("/logout")
def logout() -> dict:
    return {"success": True, "message": "Logout successful"}


@router.post("/register", status_code=201, dependencies=[Depends(rate_limited("auth.register"))])
def register(
    payload: MemberCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
) -> dict:
    member = create_member(db, payload, notifier=notifier, background_tasks=background_tasks)
    return {"success": True, "message": "Member registered", "data": {"member": MemberOut.model_validate(member)}}
