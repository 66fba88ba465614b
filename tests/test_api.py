from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from planmate import api, cohosts
from planmate.errors import InvalidState


@pytest.fixture()
def client(monkeypatch):
    """FastAPI test client with the scheduler disabled."""

    monkeypatch.setattr(api, "start_scheduler", lambda: None)
    monkeypatch.setattr(api, "stop_scheduler", lambda: None)
    with TestClient(api.app) as test_client:
        yield test_client


def _register(client, email: str, name: str = "Guest") -> dict[str, str]:
    response = client.post("/api/v1/users", json={"email": email, "name": name})
    assert response.status_code == 201
    return {"Authorization": f"Bearer {response.json()['api_token']}"}


def _create_event(client, headers, **overrides) -> dict:
    payload = {
        "title": "Lake Weekend",
        "type": "MULTI_DAY",
        "start_date": "2025-03-01T10:00:00Z",
        "end_date": "2025-03-03T02:00:00Z",
        "location": "Cabin 7",
        "require_approval": True,
    }
    payload.update(overrides)
    response = client.post("/api/v1/events", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["event"]


def test_requests_without_token_are_rejected(client):
    assert client.get("/api/v1/users/me").status_code == 401
    response = client.get(
        "/api/v1/events", headers={"Authorization": "Bearer not-a-token"}
    )
    assert response.status_code == 401
    assert response.json() == {"detail": "Authentication required"}


def test_register_and_rotate_token(client):
    headers = _register(client, "Ada@Example.com", "Ada")
    me = client.get("/api/v1/users/me", headers=headers).json()["user"]
    assert me["email"] == "ada@example.com"

    duplicate = client.post(
        "/api/v1/users", json={"email": "ada@example.com", "name": "Ada"}
    )
    assert duplicate.status_code == 400
    assert duplicate.json()["error"] == "InvariantViolation"

    rotated = client.post("/api/v1/users/me/token", headers=headers).json()["api_token"]
    assert client.get("/api/v1/users/me", headers=headers).status_code == 401
    fresh = {"Authorization": f"Bearer {rotated}"}
    assert client.get("/api/v1/users/me", headers=fresh).status_code == 200


def test_invalid_payload_returns_validation_error(client):
    headers = _register(client, "host@example.com")
    response = client.post(
        "/api/v1/events",
        json={"title": "x", "type": "PARTY", "start_date": "2025-03-01T10:00:00Z"},
        headers=headers,
    )
    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "ValidationError"
    assert body["details"]


def test_event_creation_materializes_days(client):
    headers = _register(client, "host@example.com")
    event = _create_event(client, headers)
    assert event["role"] == "host"
    assert [day["date"][:10] for day in event["days"]] == [
        "2025-03-01",
        "2025-03-02",
        "2025-03-03",
    ]

    listing = client.get("/api/v1/events", headers=headers).json()
    assert [item["id"] for item in listing["events"]] == [event["id"]]
    assert listing["pagination"]["total_events"] == 1


def test_join_and_decide_flow(client):
    host = _register(client, "host@example.com")
    guest = _register(client, "guest@example.com")
    event = _create_event(client, host)
    base = f"/api/v1/events/{event['id']}"

    preview = client.get(f"{base}/preview", headers=guest).json()["event"]
    assert preview["location"] is None
    assert preview["location_hidden"] is True

    joined = client.post(f"{base}/join", headers=guest)
    assert joined.status_code == 201
    assert joined.json()["attendee"]["status"] == "PENDING"
    again = client.post(f"{base}/join", headers=guest)
    assert again.status_code == 200
    assert again.json()["reused"] is True

    assert client.get(f"{base}/attendees/pending", headers=guest).status_code == 403
    pending = client.get(f"{base}/attendees/pending", headers=host).json()["attendees"]
    guest_id = pending[0]["user_id"]

    decided = client.post(
        f"{base}/attendees/{guest_id}/decision",
        json={"decision": "APPROVE"},
        headers=host,
    )
    assert decided.status_code == 200
    assert decided.json()["attendee"]["status"] == "ACCEPTED"

    repeat = client.post(
        f"{base}/attendees/{guest_id}/decision",
        json={"decision": "DECLINE"},
        headers=host,
    )
    assert repeat.status_code == 400
    assert repeat.json() == {
        "error": "InvalidState",
        "message": "Attendee not found or not pending",
    }

    bulk = client.post(
        f"{base}/attendees/decisions",
        json={"decisions": [{"user_id": guest_id, "decision": "DECLINE"}]},
        headers=host,
    ).json()
    assert bulk["skipped"] == [guest_id]

    preview = client.get(f"{base}/preview", headers=guest).json()["event"]
    assert preview["location"] == "Cabin 7"
    roster = client.get(f"{base}/attendees", headers=host).json()
    assert [a["user_id"] for a in roster["groups"]["accepted"]] == [guest_id]


def test_cohost_invite_flow(client):
    host = _register(client, "host@example.com")
    friend = _register(client, "friend@example.com")
    event = _create_event(client, host)
    base = f"/api/v1/events/{event['id']}"

    created = client.post(
        f"{base}/cohosts/invites", json={"email": "Friend@Example.com"}, headers=host
    )
    assert created.status_code == 201
    invite_id = created.json()["invite"]["id"]
    reused = client.post(
        f"{base}/cohosts/invites", json={"email": "friend@example.com"}, headers=host
    )
    assert reused.status_code == 200
    assert reused.json()["invite"]["id"] == invite_id

    mine = client.get("/api/v1/users/me/invites", headers=friend).json()["invites"]
    assert [invite["event"]["id"] for invite in mine] == [event["id"]]

    accepted = client.post(f"{base}/cohosts/invites/{invite_id}/accept", headers=friend)
    assert accepted.status_code == 200
    assert accepted.json()["invite"]["status"] == "ACCEPTED"

    detail = client.get(base, headers=friend).json()["event"]
    assert detail["role"] == "cohost"
    friend_id = detail["cohosts"][0]["id"]

    assert client.delete(f"{base}/cohosts/{friend_id}", headers=friend).status_code == 403
    removed = client.delete(f"{base}/cohosts/{friend_id}", headers=host)
    assert removed.status_code == 204
    assert client.get(base, headers=friend).status_code == 403


def test_activity_routes(client):
    host = _register(client, "host@example.com")
    event = _create_event(client, host)
    base = f"/api/v1/events/{event['id']}"
    day = event["days"][0]

    created = client.post(
        f"{base}/activities",
        json={
            "day_id": day["id"],
            "title": "Kayaking",
            "start_time": "2025-03-01T14:00:00Z",
            "end_time": "2025-03-01T16:00:00Z",
        },
        headers=host,
    )
    assert created.status_code == 201
    activity_id = created.json()["activity"]["id"]

    mismatched = client.post(
        f"{base}/activities",
        json={"day_id": day["id"], "title": "Late", "start_time": "2025-03-02T14:00:00Z"},
        headers=host,
    )
    assert mismatched.status_code == 400
    assert mismatched.json()["error"] == "InvariantViolation"

    days = client.get(f"{base}/days", headers=host).json()["days"]
    assert [a["id"] for a in days[0]["activities"]] == [activity_id]

    deleted = client.delete(f"{base}/activities/{activity_id}", headers=host)
    assert deleted.status_code == 204
    missing = client.delete(f"{base}/activities/{activity_id}", headers=host)
    assert missing.status_code == 404


def test_poll_routes(client):
    host = _register(client, "host@example.com")
    guest = _register(client, "guest@example.com")
    event = _create_event(client, host, require_approval=False)
    base = f"/api/v1/events/{event['id']}"
    client.post(f"{base}/join", headers=guest)

    created = client.post(
        f"{base}/polls",
        json={
            "title": "Dinner?",
            "options": ["Tacos", "Sushi"],
            "settings": {"result_visibility": "VISIBLE_AFTER_VOTING"},
        },
        headers=host,
    )
    assert created.status_code == 201
    poll_id = created.json()["id"]

    listed = client.get(f"{base}/polls", headers=guest).json()["polls"][0]
    assert listed["results_visible"] is False
    assert all("count" not in option for option in listed["options"])
    option_id = listed["options"][0]["id"]

    voted = client.post(
        f"{base}/polls/{poll_id}/vote", json={"option_ids": [option_id]}, headers=guest
    )
    assert voted.status_code == 204
    listed = client.get(f"{base}/polls", headers=guest).json()["polls"][0]
    assert listed["options"][0]["count"] == 1
    assert listed["my_selections"] == [option_id]

    settings_change = client.patch(
        f"{base}/polls/{poll_id}",
        json={"settings": {"result_visibility": "VISIBLE_TO_ALL"}},
        headers=host,
    )
    assert settings_change.status_code == 400
    assert "not allowed" in settings_change.json()["message"]

    closed = client.patch(
        f"{base}/polls/{poll_id}", json={"status": "CLOSED"}, headers=host
    )
    assert closed.status_code == 200
    assert closed.json()["poll"]["status"] == "CLOSED"

    late = client.post(
        f"{base}/polls/{poll_id}/vote", json={"option_ids": [option_id]}, headers=guest
    )
    assert late.status_code == 400
    assert late.json()["message"] == "Poll is closed"


def test_delete_event_route(client):
    host = _register(client, "host@example.com")
    guest = _register(client, "guest@example.com")
    event = _create_event(client, host, require_approval=False)
    base = f"/api/v1/events/{event['id']}"
    client.post(f"{base}/join", headers=guest)

    assert client.delete(base, headers=guest).status_code == 403
    assert client.delete(base, headers=host).status_code == 204
    assert client.get(base, headers=host).status_code == 404


def test_failed_cohost_removal_rolls_back_membership(client, monkeypatch):
    host = _register(client, "host@example.com")
    friend = _register(client, "friend@example.com")
    event = _create_event(client, host)
    base = f"/api/v1/events/{event['id']}"
    invite_id = client.post(
        f"{base}/cohosts/invites", json={"email": "friend@example.com"}, headers=host
    ).json()["invite"]["id"]
    client.post(f"{base}/cohosts/invites/{invite_id}/accept", headers=friend)
    friend_id = client.get(base, headers=friend).json()["event"]["cohosts"][0]["id"]

    def refuse(*args, **kwargs):
        raise InvalidState("Invite cannot be updated")

    # Membership is dropped before the invite is marked, so the second write fails.
    monkeypatch.setattr(cohosts, "next_invite_status", refuse)
    failed = client.delete(f"{base}/cohosts/{friend_id}", headers=host)
    assert failed.status_code == 400
    assert failed.json()["error"] == "InvalidState"

    detail = client.get(base, headers=friend).json()["event"]
    assert detail["role"] == "cohost"
    assert [cohost["id"] for cohost in detail["cohosts"]] == [friend_id]
    invites = client.get(f"{base}/cohosts/invites", headers=host).json()["invites"]
    assert [invite["status"] for invite in invites] == ["ACCEPTED"]


def test_poll_patch_null_description_clears_it(client):
    host = _register(client, "host@example.com")
    event = _create_event(client, host)
    base = f"/api/v1/events/{event['id']}"
    poll_id = client.post(
        f"{base}/polls",
        json={"title": "Dinner?", "description": "Friday", "options": ["Tacos"]},
        headers=host,
    ).json()["id"]

    renamed = client.patch(f"{base}/polls/{poll_id}", json={"title": "Lunch?"}, headers=host)
    assert renamed.json()["poll"]["description"] == "Friday"

    cleared = client.patch(f"{base}/polls/{poll_id}", json={"description": None}, headers=host)
    assert cleared.status_code == 200
    assert cleared.json()["poll"] == {
        "id": poll_id,
        "title": "Lunch?",
        "description": None,
        "status": "OPEN",
    }
