from __future__ import annotations

"""
External identity providers for passwordless login.

Callers ask ``status()`` before issuing a link so the local fallback is an
explicit decision, not a reaction to whatever the provider raised.
"""

from dataclasses import dataclass
from typing import Optional

import httpx

from .config import Settings


class IdentityProviderError(RuntimeError):
    pass


class ProviderUnavailableError(IdentityProviderError):
    pass


class InvalidIdTokenError(IdentityProviderError):
    pass


@dataclass(frozen=True)
class ProviderStatus:
    available: bool
    reason: Optional[str] = None

    @classmethod
    def up(cls) -> "ProviderStatus":
        return cls(available=True)

    @classmethod
    def down(cls, reason: str) -> "ProviderStatus":
        return cls(available=False, reason=reason)


class IdentityProvider:
    name = "base"

    def status(self) -> ProviderStatus:  # pragma: no cover - interface
        raise NotImplementedError

    def issue_sign_in_link(self, email: str, continue_url: str) -> Optional[str]:  # pragma: no cover - interface
        """Return the sign-in link, or None when the provider delivered it itself."""
        raise NotImplementedError

    def verify_id_token(self, id_token: str) -> str:  # pragma: no cover - interface
        """Return the verified email address bound to ``id_token``."""
        raise NotImplementedError


class DisabledIdentityProvider(IdentityProvider):
    name = "none"

    def __init__(self, reason: str = "identity provider not configured") -> None:
        self.reason = reason

    def status(self) -> ProviderStatus:
        return ProviderStatus.down(self.reason)

    def issue_sign_in_link(self, email: str, continue_url: str) -> Optional[str]:
        raise ProviderUnavailableError(self.reason)

    def verify_id_token(self, id_token: str) -> str:
        raise ProviderUnavailableError(self.reason)


class FirebaseIdentityProvider(IdentityProvider):
    """Firebase Authentication through the Identity Toolkit REST API."""

    name = "firebase"

    def __init__(self, api_key: str, base_url: str, timeout: float) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def status(self) -> ProviderStatus:
        if not self.api_key:
            return ProviderStatus.down("firebase api key missing")
        return ProviderStatus.up()

    def _post(self, method: str, payload: dict) -> dict:
        url = f"{self.base_url}/{method}"
        try:
            with httpx.Client(timeout=self.timeout) as client:
                resp = client.post(url, params={"key": self.api_key}, json=payload)
        except httpx.HTTPError as exc:
            raise ProviderUnavailableError(f"firebase unreachable: {exc}") from exc
        if resp.status_code >= 500:
            raise ProviderUnavailableError(f"firebase error ({resp.status_code})")
        if resp.status_code >= 400:
            try:
                detail = resp.json().get("error", {}).get("message", "")
            except ValueError:
                detail = resp.text[:200]
            raise InvalidIdTokenError(detail or f"firebase rejected request ({resp.status_code})")
        return resp.json()

    def issue_sign_in_link(self, email: str, continue_url: str) -> Optional[str]:
        # API-key callers cannot ask for the link back (returnOobLink needs OAuth credentials);
        # Firebase emails the link and the page at continue_url completes sign-in
        try:
            self._post(
                "accounts:sendOobCode",
                {
                    "requestType": "EMAIL_SIGNIN",
                    "email": email,
                    "continueUrl": continue_url,
                    "canHandleCodeInApp": True,
                },
            )
        except InvalidIdTokenError as exc:
            # A rejected issuance request means the provider cannot serve us right now
            raise ProviderUnavailableError(str(exc)) from exc
        return None

    def verify_id_token(self, id_token: str) -> str:
        data = self._post("accounts:lookup", {"idToken": id_token})
        users = data.get("users") or []
        email = users[0].get("email") if users else None
        if not email:
            raise InvalidIdTokenError("no email bound to id token")
        return email


def get_identity_provider(settings: Settings) -> IdentityProvider:
    if settings.identity_provider == "firebase":
        if not settings.firebase_api_key:
            return DisabledIdentityProvider("firebase api key missing")
        return FirebaseIdentityProvider(
            api_key=settings.firebase_api_key,
            base_url=settings.firebase_base_url,
            timeout=settings.external_timeout_seconds,
        )
    return DisabledIdentityProvider()
