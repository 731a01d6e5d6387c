from __future__ import annotations

import uuid

from sqlalchemy.orm import Session

from flock.identity import find_for_checkin, normalize_name, normalize_uo_id
from flock.utils import clip_then_trim


def _tag() -> str:
    return uuid.uuid4().hex[:8]


def test_truncate_happens_before_trim() -> None:
    raw = "x" * 98 + "  " + "y" * 5
    assert len(raw) == 105
    name = normalize_name(raw)
    assert name == "x" * 98
    # Trim-then-truncate would have kept the two trailing spaces
    assert name == raw[:100].strip()
    assert len(name) <= 100


def test_leading_padding_counts_against_limit() -> None:
    raw = "   " + "y" * 102
    assert normalize_name(raw) == "y" * 97


def test_normalize_name_collapses_whitespace() -> None:
    assert normalize_name("  Jane \t  Doe ") == "Jane Doe"
    assert normalize_name(None) == ""
    assert normalize_name(123) == ""


def test_normalize_uo_id() -> None:
    assert normalize_uo_id("   ") is None
    assert normalize_uo_id("") is None
    assert normalize_uo_id(" 95100 ") == "95100"
    assert normalize_uo_id("9" * 25) == "9" * 20


def test_clip_then_trim_non_string() -> None:
    assert clip_then_trim(None, 10) == ""
    assert clip_then_trim("  ab  ", 3) == "a"


def test_case_insensitive_match(db: Session, make_member) -> None:
    tag = _tag()
    member = make_member(name=f"Ada {tag} Lovelace")
    found = find_for_checkin(db, f"  ada   {tag.upper()}  LOVELACE ")
    assert found is not None and found.id == member.id


def test_stored_spacing_is_normalized(db: Session, make_member) -> None:
    tag = _tag()
    member = make_member(name=f"Grace  {tag}  Hopper")
    found = find_for_checkin(db, f"grace {tag} hopper")
    assert found is not None and found.id == member.id


def test_ambiguous_name_resolves_to_none(db: Session, make_member) -> None:
    tag = _tag()
    make_member(name=f"Twin {tag}")
    make_member(name=f"Twin  {tag}")
    assert find_for_checkin(db, f"Twin {tag}") is None


def test_unknown_or_blank_name(db: Session) -> None:
    assert find_for_checkin(db, f"Nobody {_tag()}") is None
    assert find_for_checkin(db, "   ") is None


def test_partial_name_does_not_match(db: Session, make_member) -> None:
    tag = _tag()
    make_member(name=f"Alan {tag} Turing")
    assert find_for_checkin(db, f"Alan {tag}") is None


def test_uo_id_mismatch_is_tolerated(db: Session, make_member) -> None:
    tag = _tag()
    member = make_member(name=f"Edsger {tag}", uo_id=f"U{tag}")
    found = find_for_checkin(db, f"Edsger {tag}", "DIFFERENT")
    assert found is not None and found.id == member.id


def test_like_wildcards_are_literal(db: Session, make_member) -> None:
    tag = _tag()
    make_member(name=f"Percent {tag}")
    assert find_for_checkin(db, f"P%t {tag}") is None


def test_non_ascii_names_fold_case(db: Session, make_member) -> None:
    tag = _tag()
    member = make_member(name=f"Émile Zola{tag}")
    found = find_for_checkin(db, f"émile  ZOLA{tag.upper()}")
    assert found is not None and found.id == member.id


def test_casefold_expansion_matches(db: Session, make_member) -> None:
    tag = _tag()
    member = make_member(name=f"Anna Straße {tag}")
    found = find_for_checkin(db, f"anna STRASSE {tag}")
    assert found is not None and found.id == member.id


def test_match_key_follows_renames(db: Session, make_member) -> None:
    tag = _tag()
    member = make_member(name=f"Old {tag}")
    member.name = f"Ödön  {tag}"
    db.commit()
    assert member.name_key == f"ödön {tag}"
    assert find_for_checkin(db, f"Old {tag}") is None
    found = find_for_checkin(db, f"ÖDÖN {tag}")
    assert found is not None and found.id == member.id
