from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import select

from .database import Base, engine, SessionLocal
from .models import Event, Member


def upsert_defaults() -> None:
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        # Members (keyed by email)
        defaults_members = [
            ("admin@example.com", "Flock Admin", None, "Admin", "Head Office"),
            ("jane.doe@example.com", "Jane Doe", "951000001", "Member", "Eugene"),
            ("john.smith@example.com", "John Smith", "951000002", "Member", "Portland"),
        ]
        for email, name, uo_id, role, workplace in defaults_members:
            if not db.execute(select(Member.id).where(Member.email == email)).first():
                db.add(Member(name=name, email=email, uo_id=uo_id, role_name=role, workplace_name=workplace))
        db.flush()

        # Events
        admin_id = db.execute(select(Member.id).where(Member.email == "admin@example.com")).scalar()
        defaults_events = [
            ("General Meeting", "Monthly membership meeting", 7, "Union Hall"),
            ("New Member Orientation", "Welcome session for new members", 14, "Room 101"),
        ]
        for title, description, days_ahead, location in defaults_events:
            if not db.execute(select(Event.id).where(Event.title == title)).first():
                db.add(
                    Event(
                        title=title,
                        description=description,
                        event_date=datetime.utcnow() + timedelta(days=days_ahead),
                        location=location,
                        created_by=admin_id,
                    )
                )

        db.commit()
    finally:
        db.close()


def main() -> None:
    upsert_defaults()
    print("Seed complete.")


if __name__ == "__main__":
    main()
