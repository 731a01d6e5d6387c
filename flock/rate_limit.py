from __future__ import annotations

import time
from typing import Callable, Tuple

from fastapi import HTTPException, Request, status

from .config import get_settings


_window_counts: dict[Tuple[str, str, int], int] = {}


def rate_limit_check(request: Request, scope: str) -> None:
    settings = get_settings()
    if not settings.rate_limit_enabled:
        return
    ip = request.client.host if request.client else "unknown"
    minute = int(time.time() // 60)
    key = (scope, ip, minute)
    count = _window_counts.get(key, 0) + 1
    _window_counts[key] = count
    if count > settings.rate_limit_per_minute:
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="Too many requests")


def rate_limited(scope: str) -> Callable[[Request], None]:
    def dependency(request: Request) -> None:
        rate_limit_check(request, scope)

    return dependency
