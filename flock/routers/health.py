from __future__ import annotations

from fastapi import APIRouter, Request

from ..config import get_settings


router = APIRouter(tags=["health"])


@router.get("/health")
def health(request: Request) -> dict:
    settings = get_settings()
    auth = request.app.state.auth
    return {
        "status": "ok",
        "environment": settings.environment,
        "identity_provider": auth.provider.status().available,
        "email_transports": request.app.state.notifier.modes,
    }
