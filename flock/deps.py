from __future__ import annotations

from typing import Optional

from fastapi import Header, Request
from sqlalchemy.orm import Session

from .auth import MagicLinkAuth
from .checkin import CheckInService
from .config import get_settings
from .database import get_db_session
from .errors import AuthenticationError
from .mailer import Notifier
from .tokens import CheckInTokenCodec


def get_db() -> Session:
    yield from get_db_session()


def _bearer(authorization: Optional[str]) -> Optional[str]:
    if not authorization or not authorization.lower().startswith("bearer "):
        return None
    return authorization.split(" ", 1)[1].strip()


def require_token(authorization: Optional[str] = Header(default=None)) -> str:
    token = _bearer(authorization)
    if token is None:
        raise AuthenticationError("Missing bearer token")
    if token != get_settings().api_token:
        raise AuthenticationError("Invalid token")
    return token


def is_admin(authorization: Optional[str] = Header(default=None)) -> bool:
    token = _bearer(authorization)
    return token is not None and token == get_settings().api_token


def get_codec(request: Request) -> CheckInTokenCodec:
    return request.app.state.codec


def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier


def get_checkin_service(request: Request) -> CheckInService:
    return request.app.state.checkin


def get_auth_service(request: Request) -> MagicLinkAuth:
    return request.app.state.auth

