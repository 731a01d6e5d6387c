from __future__ import annotations

import re
from typing import Any, Optional


_WHITESPACE_RUN = re.compile(r"\s+")


def clip_then_trim(value: Any, limit: int) -> str:
    # Truncate to the column limit first, then trim; never the reverse.
    if not isinstance(value, str):
        return ""
    return value[:limit].strip()


def collapse_whitespace(value: str) -> str:
    return _WHITESPACE_RUN.sub(" ", value).strip()


def normalize_free_text(value: Any, limit: int) -> str:
    """Clip, trim and collapse whitespace. The result is never longer than ``limit``."""
    return collapse_whitespace(clip_then_trim(value, limit))


def normalize_optional(value: Any, limit: int) -> Optional[str]:
    text = normalize_free_text(value, limit)
    return text or None


def normalize_email(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    return value.strip().lower()


def token_preview(token: Optional[str], length: int = 8) -> str:
    if not token:
        return "-"
    return f"{token[:length]}..."


def name_match_key(value: str) -> str:
    """Lookup key for names: whitespace collapsed, Unicode case folded."""
    return collapse_whitespace(value).casefold()
