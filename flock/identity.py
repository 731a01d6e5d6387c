from __future__ import annotations

"""
Resolves a self-reported attendee name to one pre-registered member.

Name match is authoritative. The optional secondary id (uo_id) only
corroborates: a mismatch is logged and the name-matched member is still
returned. Zero or several matches resolve to nothing.
"""

import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from .models import NAME_MAX_LENGTH, UO_ID_MAX_LENGTH, Member
from .utils import name_match_key, normalize_free_text, normalize_optional


logger = logging.getLogger("flock.identity")


def normalize_name(raw_name: object) -> str:
    return normalize_free_text(raw_name, NAME_MAX_LENGTH)


def normalize_uo_id(raw_uo_id: object) -> Optional[str]:
    return normalize_optional(raw_uo_id, UO_ID_MAX_LENGTH)


def _candidates(db: Session, name: str) -> List[Member]:
    # Member.name_key is maintained by the model; SQL lower() and LIKE only fold ASCII
    stmt = select(Member).where(Member.name_key == name_match_key(name))
    return list(db.execute(stmt).scalars().all())


def find_for_checkin(db: Session, raw_name: object, raw_uo_id: object = None) -> Optional[Member]:
    name = normalize_name(raw_name)
    if not name:
        return None
    uo_id = normalize_uo_id(raw_uo_id)

    matches = _candidates(db, name)
    if len(matches) != 1:
        if matches:
            logger.warning("Ambiguous name for check-in: %d members match (name_length=%d)", len(matches), len(name))
        return None

    member = matches[0]
    if uo_id and member.uo_id and member.uo_id != uo_id:
        logger.warning("UO ID mismatch for member %s; accepting name match", member.id)
    return member
