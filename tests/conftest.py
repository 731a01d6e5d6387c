from __future__ import annotations

import os
import sys
import tempfile
import uuid
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Dict, Iterator, Optional

# Ensure project root is on sys.path
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Point the app at a throwaway database before anything imports flock.config
_DB_DIR = tempfile.mkdtemp(prefix="flock-tests-")
os.environ["FLOCK_DATABASE_URL"] = f"sqlite:///{Path(_DB_DIR) / 'flock-test.db'}"
os.environ["FLOCK_ENVIRONMENT"] = "test"
os.environ["FLOCK_CHECKIN_TOKEN_SECRET"] = "test-checkin-secret-0123456789abcdef"
os.environ["FLOCK_API_TOKEN"] = "dev-token"
os.environ["FLOCK_RATE_LIMIT_ENABLED"] = "false"

import pytest
from sqlalchemy.orm import Session

from flock import models  # noqa: F401  registers tables
from flock.config import get_settings
from flock.database import Base, SessionLocal, engine
from flock.models import Event, Member
from flock.rate_limit import _window_counts as _rate_counts


Base.metadata.create_all(bind=engine)

API_TOKEN = "dev-token"


@pytest.fixture(autouse=True)
def _reset_settings() -> Iterator[None]:
    yield
    # Runs after monkeypatch has restored the environment
    get_settings.cache_clear()  # type: ignore[attr-defined]
    _rate_counts.clear()


@pytest.fixture()
def auth_headers() -> Dict[str, str]:
    return {"Authorization": f"Bearer {API_TOKEN}"}


@pytest.fixture()
def db() -> Iterator[Session]:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def make_member(db: Session) -> Callable[..., Member]:
    def _make(
        name: Optional[str] = None,
        email: Optional[str] = None,
        uo_id: Optional[str] = None,
    ) -> Member:
        tag = uuid.uuid4().hex[:10]
        member = Member(
            name=name or f"Member {tag}",
            email=email or f"member-{tag}@example.com",
            uo_id=uo_id,
        )
        db.add(member)
        db.commit()
        db.refresh(member)
        return member

    return _make


@pytest.fixture()
def make_event(db: Session) -> Callable[..., Event]:
    def _make(event_id: Optional[int] = None, title: Optional[str] = None, days_ahead: int = 3) -> Event:
        if event_id is not None:
            existing = db.get(Event, event_id)
            if existing is not None:
                return existing
        event = Event(
            id=event_id,
            title=title or f"Event {uuid.uuid4().hex[:8]}",
            event_date=datetime.utcnow() + timedelta(days=days_ahead),
            location="Union Hall",
        )
        db.add(event)
        db.commit()
        db.refresh(event)
        return event

    return _make
