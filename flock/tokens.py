from __future__ import annotations

"""
Signed, expiring check-in credentials bound to a single event.

A credential is a compact HS256 JWT carrying the event id, the issue time and
the expiry. Nothing is stored server side: the token is self-describing and
is only as good as the secret it was signed with.
"""

import logging
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

import jwt

from .errors import CredentialError, ValidationError


ALGORITHM = "HS256"
SCOPE = "event-checkin"
DEFAULT_TTL_HOURS = 24.0
PUBLIC_MESSAGE = "Invalid or expired QR code token. Please scan the QR code again."

logger = logging.getLogger("flock.tokens")


class InvalidFormat(CredentialError):
    default_message = PUBLIC_MESSAGE


class InvalidSignature(CredentialError):
    default_message = PUBLIC_MESSAGE


class TokenExpired(CredentialError):
    default_message = PUBLIC_MESSAGE


class WrongEvent(CredentialError):
    default_message = PUBLIC_MESSAGE


@dataclass(frozen=True)
class VerifiedCredential:
    event_id: int
    issued_at: datetime
    expires_at: datetime

    def seconds_left(self, now: Optional[float] = None) -> int:
        current = time.time() if now is None else now
        return max(0, int(self.expires_at.timestamp() - current))


def _to_datetime(ts: float) -> datetime:
    return datetime.fromtimestamp(ts, tz=timezone.utc)


class CheckInTokenCodec:
    """Issues and verifies check-in credentials.

    ``clock`` returns the current unix time; tests pass a fake one to move past
    expiry without sleeping.
    """

    def __init__(
        self,
        secret: Optional[str],
        default_ttl_hours: float = DEFAULT_TTL_HOURS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not secret:
            secret = secrets.token_urlsafe(48)
            logger.warning("No check-in token secret configured; using a per-process random secret")
        self._secret = secret
        self.default_ttl_hours = default_ttl_hours
        self._clock = clock

    def issue(self, event_id: int, ttl_hours: Optional[float] = None) -> str:
        if ttl_hours is None:
            ttl_hours = self.default_ttl_hours
        if ttl_hours <= 0:
            raise ValidationError("Invalid expiration_hours parameter")
        issued_at = int(self._clock())
        expires_at = issued_at + max(1, int(round(ttl_hours * 3600)))
        payload: Dict[str, Any] = {
            "scope": SCOPE,
            "event_id": int(event_id),
            "iat": issued_at,
            "exp": expires_at,
        }
        return jwt.encode(payload, self._secret, algorithm=ALGORITHM)

    def verify(self, token: str, expected_event_id: int) -> VerifiedCredential:
        payload = self._decode(token)
        if self._clock() > payload["exp"]:
            raise TokenExpired()
        if payload["event_id"] != int(expected_event_id):
            raise WrongEvent()
        return VerifiedCredential(
            event_id=payload["event_id"],
            issued_at=_to_datetime(payload["iat"]),
            expires_at=_to_datetime(payload["exp"]),
        )

    def expiration_of(self, token: str) -> Optional[datetime]:
        """Expiry embedded in ``token`` for display only; the signature is not checked."""
        try:
            payload = jwt.decode(token, options={"verify_signature": False})
        except jwt.InvalidTokenError:
            return None
        exp = payload.get("exp")
        if not isinstance(exp, (int, float)):
            return None
        return _to_datetime(exp)

    def _decode(self, token: str) -> Dict[str, Any]:
        if not isinstance(token, str) or not token:
            raise InvalidFormat()
        try:
            # Expiry is checked against our own clock after the signature passes
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                options={
                    "verify_exp": False,
                    "verify_iat": False,
                    "verify_nbf": False,
                    "require": ["exp", "iat"],
                },
            )
        except jwt.InvalidSignatureError as exc:
            raise InvalidSignature() from exc
        except jwt.InvalidTokenError as exc:
            raise InvalidFormat() from exc

        if payload.get("scope") != SCOPE:
            raise InvalidFormat()
        for claim in ("event_id", "iat", "exp"):
            value = payload.get(claim)
            if not isinstance(value, int) or isinstance(value, bool):
                raise InvalidFormat()
        return payload
