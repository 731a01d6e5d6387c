from __future__ import annotations

"""
Passwordless (magic link) login.

Links are issued by the external identity provider when it reports itself
available. Outside production, an unavailable or failing provider falls back
to a single-use dev token held in a ``DevTokenStore`` owned by this service.
The response to a login request never reveals whether the email is known.
"""

import logging
import secrets
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote, urlencode

from fastapi import BackgroundTasks
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from .config import Settings
from .dev_tokens import DevTokenStore
from .errors import CredentialError, UnavailableError, ValidationError
from .identity_provider import IdentityProvider, InvalidIdTokenError, ProviderUnavailableError
from .mailer import MemberContact, Notifier
from .models import Member
from .utils import normalize_email, token_preview


logger = logging.getLogger("flock.auth")

LOGIN_LINK_SENT = "If an account exists with this email, a login link has been sent."
INVALID_LOGIN = "Invalid or expired login link"


@dataclass
class LoginSession:
    token: str
    member: Member
    method: str


def find_member_by_email(db: Session, email: str) -> Optional[Member]:
    return db.execute(select(Member).where(Member.email == email)).scalars().first()


class MagicLinkAuth:
    def __init__(
        self,
        settings: Settings,
        provider: IdentityProvider,
        notifier: Notifier,
        dev_tokens: Optional[DevTokenStore] = None,
    ) -> None:
        self.settings = settings
        self.provider = provider
        self.notifier = notifier
        self.dev_tokens = dev_tokens if dev_tokens is not None else DevTokenStore()

    @property
    def dev_login_enabled(self) -> bool:
        return not self.settings.is_production

    def request_login(self, db: Session, raw_email: Optional[str], background_tasks: Optional[BackgroundTasks] = None) -> str:
        email = normalize_email(raw_email)
        if not email:
            raise ValidationError("Email is required")

        try:
            member = find_member_by_email(db, email)
        except OperationalError as exc:
            logger.error("Member lookup failed during login request: %s", exc)
            raise UnavailableError() from exc

        if member is None:
            logger.info("Login requested for unknown address")
            return LOGIN_LINK_SENT

        contact = MemberContact.of(member)
        link = self._issue_link(contact)
        if link is None:
            return LOGIN_LINK_SENT

        if background_tasks is not None:
            background_tasks.add_task(self._send_link, contact, link)
        else:
            self._send_link(contact, link)
        return LOGIN_LINK_SENT

    def verify_login(
        self,
        db: Session,
        *,
        id_token: Optional[str] = None,
        dev_token: Optional[str] = None,
        email: Optional[str] = None,
    ) -> LoginSession:
        if dev_token and email:
            if not self.dev_login_enabled:
                logger.warning("Dev token presented in production posture")
                raise CredentialError(INVALID_LOGIN)
            return self._verify_dev_token(db, dev_token, email)
        if id_token:
            return self._verify_id_token(db, id_token)
        raise ValidationError("ID token required")

    def _issue_link(self, member: MemberContact) -> Optional[str]:
        continue_url = f"{self.settings.frontend_base}/verify"
        status = self.provider.status()
        if status.available:
            try:
                link = self.provider.issue_sign_in_link(member.email, continue_url)
            except ProviderUnavailableError as exc:
                logger.warning("Identity provider %s failed to issue link: %s", self.provider.name, exc)
                reason = str(exc)
            else:
                if link is None:
                    logger.info("Identity provider %s delivered the sign-in link itself", self.provider.name)
                return link
        else:
            reason = status.reason or "unavailable"

        if not self.dev_login_enabled:
            logger.error("Identity provider unavailable in production (%s); no login link issued", reason)
            return None

        ttl_seconds = self.settings.dev_token_ttl_minutes * 60
        token = self.dev_tokens.issue(member.email, member.id, ttl_seconds)
        logger.info("Identity provider unavailable (%s); issued dev token %s", reason, token_preview(token))
        query = urlencode({"token": token, "email": member.email}, quote_via=quote)
        return f"{continue_url}?{query}"

    def _send_link(self, member: MemberContact, link: str) -> None:
        try:
            self.notifier.send_magic_link(member.email, member.name, link, self.settings.dev_token_ttl_minutes)
        except Exception:
            logger.exception("Failed to send login link to member %s", member.id)

    def _verify_dev_token(self, db: Session, dev_token: str, raw_email: str) -> LoginSession:
        email = normalize_email(raw_email)
        record = self.dev_tokens.take(dev_token.strip())
        if record is None or record.email != email:
            raise CredentialError(INVALID_LOGIN)
        if record.is_expired(self.dev_tokens.now()):
            raise CredentialError(INVALID_LOGIN)
        member = self._lookup(db, email)
        return LoginSession(token=secrets.token_hex(32), member=member, method="dev")

    def _verify_id_token(self, db: Session, id_token: str) -> LoginSession:
        try:
            email = self.provider.verify_id_token(id_token)
        except InvalidIdTokenError as exc:
            logger.info("Identity provider rejected id token: %s", exc)
            raise CredentialError(INVALID_LOGIN) from exc
        except ProviderUnavailableError as exc:
            logger.error("Identity provider unavailable during verification: %s", exc)
            raise UnavailableError() from exc
        member = self._lookup(db, normalize_email(email))
        return LoginSession(token=id_token, member=member, method=self.provider.name)

    def _lookup(self, db: Session, email: str) -> Member:
        try:
            member = find_member_by_email(db, email)
        except OperationalError as exc:
            raise UnavailableError() from exc
        if member is None:
            raise CredentialError(INVALID_LOGIN)
        return member
