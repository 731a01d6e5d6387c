from __future__ import annotations

"""
Single-use login tokens minted locally when the identity provider cannot be
reached. Held in memory only: a restart invalidates every outstanding link.
"""

import secrets
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional


@dataclass(frozen=True)
class DevTokenRecord:
    email: str
    member_id: Optional[int]
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


class DevTokenStore:
    """Thread-safe token map with atomic take and lazy TTL eviction."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._items: Dict[str, DevTokenRecord] = {}

    def issue(self, email: str, member_id: Optional[int], ttl_seconds: float) -> str:
        token = secrets.token_hex(32)
        self.put(token, DevTokenRecord(email=email, member_id=member_id, expires_at=self._clock() + ttl_seconds))
        return token

    def put(self, token: str, record: DevTokenRecord) -> None:
        with self._lock:
            self._evict_expired_locked()
            self._items[token] = record

    def take(self, token: str) -> Optional[DevTokenRecord]:
        # get-and-delete under one lock: exactly one concurrent caller wins
        with self._lock:
            return self._items.pop(token, None)

    def purge_expired(self) -> int:
        with self._lock:
            return self._evict_expired_locked()

    def now(self) -> float:
        return self._clock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def _evict_expired_locked(self) -> int:
        now = self._clock()
        stale = [k for k, rec in self._items.items() if rec.is_expired(now)]
        for k in stale:
            del self._items[k]
        return len(stale)
