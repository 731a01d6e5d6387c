from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from typing import Dict
from urllib.parse import parse_qs, urlparse

import pytest
from fastapi.testclient import TestClient

from flock.config import get_settings
from flock.main import app
from flock.rate_limit import _window_counts as _rate_counts
from flock.tokens import PUBLIC_MESSAGE


@pytest.fixture(scope="module")
def client() -> TestClient:
    return TestClient(app)


def _event_payload(**overrides) -> dict:
    payload = {
        "title": f"Meeting {uuid.uuid4().hex[:8]}",
        "event_date": (datetime.utcnow() + timedelta(days=5)).isoformat(),
        "description": "Quarterly membership meeting",
        "location": "Union Hall",
    }
    payload.update(overrides)
    return payload


def test_health_open(client: TestClient) -> None:
    r = client.get("/health")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "ok"
    assert body["environment"] == "test"
    assert body["identity_provider"] is False
    assert body["email_transports"][-1] == "console"
    assert "X-Process-Time-Ms" in r.headers


def test_admin_routes_require_token(client: TestClient) -> None:
    for path in ("/events", "/members", "/events/1/qrcode", "/events/1/attendance"):
        r = client.get(path)
        assert r.status_code == 401
        assert r.json() == {"success": False, "message": "Missing bearer token"}
    bad = client.get("/events", headers={"Authorization": "Bearer wrong"})
    assert bad.status_code == 401
    assert bad.json()["message"] == "Invalid token"


def test_unknown_route_uses_error_shape(client: TestClient) -> None:
    r = client.get("/does-not-exist")
    assert r.status_code == 404
    assert r.json()["success"] is False


def test_request_validation_is_400(client: TestClient, auth_headers: Dict[str, str]) -> None:
    r = client.post("/members", json={"name": "No Email"}, headers=auth_headers)
    assert r.status_code == 400
    assert r.json()["success"] is False
    assert "email" in r.json()["message"]


def test_rate_limit_toggle(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    r = client.post("/auth/login", json={"email": "nobody@example.com"})
    assert r.status_code == 200

    monkeypatch.setenv("FLOCK_RATE_LIMIT_ENABLED", "true")
    monkeypatch.setenv("FLOCK_RATE_LIMIT_PER_MINUTE", "3")
    get_settings.cache_clear()  # type: ignore[attr-defined]
    _rate_counts.clear()

    for _ in range(3):
        ok = client.post("/auth/login", json={"email": "nobody@example.com"})
        assert ok.status_code == 200
    blocked = client.post("/auth/login", json={"email": "nobody@example.com"})
    assert blocked.status_code == 429
    assert blocked.json() == {"success": False, "message": "Too many requests"}


def test_members_crud(client: TestClient, auth_headers: Dict[str, str]) -> None:
    tag = uuid.uuid4().hex[:8]
    r = client.post(
        "/members",
        json={"name": f"Pat {tag}", "email": f"pat-{tag}@example.com", "uo_id": f"U{tag}", "role_name": "Steward"},
        headers=auth_headers,
    )
    assert r.status_code == 201
    member = r.json()["data"]["member"]

    got = client.get(f"/members/{member['id']}", headers=auth_headers)
    assert got.json()["data"]["member"]["role_name"] == "Steward"

    listed = client.get("/members", params={"search": tag}, headers=auth_headers)
    assert [m["id"] for m in listed.json()["data"]["members"]] == [member["id"]]

    dup = client.post(
        "/members", json={"name": "Other", "email": f"other-{tag}@example.com", "uo_id": f"U{tag}"}, headers=auth_headers
    )
    assert dup.status_code == 409
    assert dup.json()["message"] == "UO ID already exists"

    missing = client.get("/members/99999999", headers=auth_headers)
    assert missing.status_code == 404


def test_long_member_name_is_clipped(client: TestClient, auth_headers: Dict[str, str]) -> None:
    tag = uuid.uuid4().hex[:8]
    # 105 characters; the cut at 100 lands inside the whitespace run
    name = "x" * 90 + tag + "  " + "y" * 5
    r = client.post("/members", json={"name": name, "email": f"long-{tag}@example.com"}, headers=auth_headers)
    assert r.status_code == 201, r.text
    assert r.json()["data"]["member"]["name"] == "x" * 90 + tag

    blank = client.post("/members", json={"name": "   ", "email": f"blank-{tag}@example.com"}, headers=auth_headers)
    assert blank.status_code == 400


def test_events_crud(client: TestClient, auth_headers: Dict[str, str], make_member) -> None:
    creator = make_member()
    r = client.post("/events", json=_event_payload(created_by=creator.id), headers=auth_headers)
    assert r.status_code == 201
    event = r.json()["data"]["event"]
    assert event["created_by"] == creator.id

    got = client.get(f"/events/{event['id']}", headers=auth_headers)
    assert got.status_code == 200
    assert got.json()["data"]["attendance_count"] == 0

    upd = client.put(f"/events/{event['id']}", json={"location": "Room 2"}, headers=auth_headers)
    assert upd.json()["data"]["event"]["location"] == "Room 2"
    assert upd.json()["data"]["event"]["title"] == event["title"]

    listed = client.get("/events", params={"search": event["title"]}, headers=auth_headers)
    assert [e["id"] for e in listed.json()["data"]["events"]] == [event["id"]]

    by_creator = client.get("/events", params={"created_by": creator.id}, headers=auth_headers)
    assert by_creator.json()["count"] == 1

    upcoming = client.get("/events/upcoming", params={"limit": 100}, headers=auth_headers)
    assert event["id"] in [e["id"] for e in upcoming.json()["data"]["events"]]

    past = client.get("/events", params={"past": "true", "search": event["title"]}, headers=auth_headers)
    assert past.json()["data"]["events"] == []

    deleted = client.delete(f"/events/{event['id']}", headers=auth_headers)
    assert deleted.status_code == 200
    assert client.get(f"/events/{event['id']}", headers=auth_headers).status_code == 404


def test_event_with_unknown_creator(client: TestClient, auth_headers: Dict[str, str]) -> None:
    r = client.post("/events", json=_event_payload(created_by=99999999), headers=auth_headers)
    assert r.status_code == 400
    assert r.json() == {"success": False, "message": "Invalid creator ID"}


def test_qrcode_flow(client: TestClient, auth_headers: Dict[str, str], make_event, make_member) -> None:
    event = make_event()
    member = make_member()
    r = client.get(f"/events/{event.id}/qrcode", params={"expiration_hours": "1"}, headers=auth_headers)
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["event_id"] == event.id
    assert data["qr_code"].startswith("data:image/png;base64,")
    assert 3500 <= data["expires_in_seconds"] <= 3600
    assert data["expires_at"]

    url = urlparse(data["check_in_url"])
    assert f"{url.scheme}://{url.netloc}" == "http://localhost:3000"
    assert url.path == f"/checkin/{event.id}"
    query = parse_qs(url.query)
    assert query["token"] == [data["token"]]
    assert query["eventId"] == [str(event.id)]

    info = client.get(f"/events/{event.id}/checkin-info", params={"token": data["token"]})
    assert info.status_code == 200
    assert info.json()["data"]["title"] == event.title
    assert info.json()["data"]["token_expires_at"]

    checked = client.post(
        f"/events/{event.id}/checkin", json={"name": member.name, "qr_code_token": data["token"]}
    )
    assert checked.status_code == 201

    report = client.get(f"/events/{event.id}/attendance", headers=auth_headers)
    body = report.json()["data"]
    assert body["summary"]["attendance_count"] == 1
    assert body["attendance"][0]["member_name"] == member.name
    assert body["attendance"][0]["member_email"] == member.email
    assert body["summary"]["first_check_in"] == body["summary"]["last_check_in"]


def test_qrcode_default_ttl(client: TestClient, auth_headers: Dict[str, str], make_event) -> None:
    event = make_event()
    r = client.get(f"/events/{event.id}/qrcode", headers=auth_headers)
    assert r.status_code == 200
    assert r.json()["data"]["expires_in_seconds"] > 23 * 3600


@pytest.mark.parametrize("hours", ["abc", "0", "-2", "nan", "inf"])
def test_qrcode_rejects_bad_expiration(
    client: TestClient, auth_headers: Dict[str, str], make_event, hours: str
) -> None:
    event = make_event()
    r = client.get(f"/events/{event.id}/qrcode", params={"expiration_hours": hours}, headers=auth_headers)
    assert r.status_code == 400
    assert r.json() == {"success": False, "message": "Invalid expiration_hours parameter"}


def test_qrcode_png(client: TestClient, auth_headers: Dict[str, str], make_event) -> None:
    event = make_event()
    r = client.get(f"/events/{event.id}/qrcode.png", headers=auth_headers)
    assert r.status_code == 200
    assert r.headers["content-type"] == "image/png"
    assert r.content.startswith(b"\x89PNG")


def test_qrcode_for_missing_event(client: TestClient, auth_headers: Dict[str, str]) -> None:
    r = client.get("/events/99999999/qrcode", headers=auth_headers)
    assert r.status_code == 404


def test_checkin_info_ignores_bad_token(client: TestClient, make_event) -> None:
    event = make_event()
    r = client.get(f"/events/{event.id}/checkin-info", params={"token": "garbage"})
    assert r.status_code == 200
    assert r.json()["data"]["token_expires_at"] is None


def test_expired_style_rejection_message(client: TestClient, make_event, make_member) -> None:
    event = make_event()
    member = make_member()
    r = client.post(f"/events/{event.id}/checkin", json={"name": member.name, "qr_code_token": "tampered.token.value"})
    assert r.status_code == 400
    assert r.json()["message"] == PUBLIC_MESSAGE
