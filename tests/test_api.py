from __future__ import annotations

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from volunteerhub import api, crud
from volunteerhub.auth import issue_token
from volunteerhub.models import Registration, User


@pytest.fixture()
def client():
    with TestClient(api.app) as test_client:
        yield test_client


@pytest.fixture()
def organizer(make_user):
    return make_user("organizer")


@pytest.fixture()
def volunteer(make_user):
    return make_user("volunteer")


@pytest.fixture()
def admin(make_user):
    return make_user("admin")


def test_health(client):
    response = client.get("/api/v1/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_list_events_only_returns_approved(client, organizer, make_event):
    later = make_event(organizer, title="Later", date="2030-08-01")
    sooner = make_event(organizer, title="Sooner", date="2030-02-01")
    make_event(organizer, title="Pending", status="pending")
    make_event(organizer, title="Denied", status="denied")

    response = client.get("/api/v1/events")
    assert response.status_code == 200
    events = response.json()["events"]
    assert [event["id"] for event in events] == [sooner.id, later.id]
    assert {event["status"] for event in events} == {"approved"}


def test_pending_event_visibility(
    client, organizer, volunteer, admin, make_user, make_event, auth_headers
):
    event = make_event(organizer, status="pending")
    other_organizer = make_user("organizer")
    path = f"/api/v1/events/{event.id}"

    assert client.get(path).status_code == 404
    assert client.get(path, headers=auth_headers(volunteer)).status_code == 404
    assert client.get(path, headers=auth_headers(other_organizer)).status_code == 404

    owner_view = client.get(path, headers=auth_headers(organizer))
    assert owner_view.status_code == 200
    assert owner_view.json()["event"]["status"] == "pending"

    admin_view = client.get(path, headers=auth_headers(admin))
    assert admin_view.status_code == 200


def test_hidden_and_missing_events_look_the_same(client, organizer, make_event):
    event = make_event(organizer, status="denied")
    hidden = client.get(f"/api/v1/events/{event.id}")
    missing = client.get("/api/v1/events/does-not-exist")
    assert hidden.status_code == missing.status_code == 404
    assert hidden.json() == missing.json() == {"detail": "Event not found"}


@pytest.mark.parametrize(
    "header",
    ["Bearer not-a-jwt", "Basic abc123", "Bearer a.b.c"],
)
def test_bad_credentials_degrade_to_anonymous(client, organizer, make_event, header):
    approved = make_event(organizer)
    pending = make_event(organizer, status="pending")

    assert (
        client.get(
            f"/api/v1/events/{approved.id}", headers={"Authorization": header}
        ).status_code
        == 200
    )
    assert (
        client.get(
            f"/api/v1/events/{pending.id}", headers={"Authorization": header}
        ).status_code
        == 404
    )


def test_expired_owner_token_is_anonymous(client, organizer, make_event):
    pending = make_event(organizer, status="pending")
    expired = issue_token(organizer, expires_in=timedelta(hours=-1))
    response = client.get(
        f"/api/v1/events/{pending.id}",
        headers={"Authorization": f"Bearer {expired}"},
    )
    assert response.status_code == 404


def test_create_event_as_organizer(client, organizer, auth_headers):
    payload = {
        "title": "Park Cleanup",
        "description": "Bring gloves",
        "category": "Environment",
        "date": "2030-04-22",
        "start_time": "09:00",
        "end_time": "11:00",
        "address": "Central Park",
        "capacity": 12,
        "image_url": "https://example.com/park.png",
    }
    response = client.post(
        "/api/v1/events", json=payload, headers=auth_headers(organizer)
    )
    assert response.status_code == 201
    event = response.json()["event"]
    assert event["status"] == "pending"
    assert event["owner_id"] == organizer.id
    assert event["capacity"] == 12
    assert event["date"].startswith("2030-04-22")


def test_create_event_ignores_client_status(client, organizer, auth_headers):
    payload = {
        "title": "Sneaky",
        "description": "d",
        "category": "c",
        "date": "2030-01-01",
        "status": "approved",
    }
    response = client.post(
        "/api/v1/events", json=payload, headers=auth_headers(organizer)
    )
    assert response.status_code == 201
    assert response.json()["event"]["status"] == "pending"


def test_create_event_validation_and_roles(client, organizer, volunteer, auth_headers):
    missing = client.post(
        "/api/v1/events",
        json={"title": "Only a title"},
        headers=auth_headers(organizer),
    )
    assert missing.status_code == 400
    assert missing.json() == {"detail": "Missing required fields"}

    payload = {"title": "t", "description": "d", "category": "c", "date": "2030-01-01"}
    assert client.post("/api/v1/events", json=payload).status_code == 401
    forbidden = client.post(
        "/api/v1/events", json=payload, headers=auth_headers(volunteer)
    )
    assert forbidden.status_code == 403

    negative = client.post(
        "/api/v1/events",
        json={**payload, "capacity": -1},
        headers=auth_headers(organizer),
    )
    assert negative.status_code == 400
    assert negative.json() == {"detail": "Capacity must be a non-negative integer"}

    wrong_type = client.post(
        "/api/v1/events",
        json={**payload, "title": 123},
        headers=auth_headers(organizer),
    )
    assert wrong_type.status_code == 400
    assert wrong_type.json()["detail"][0]["loc"] == ["body", "title"]


def test_invalid_token_on_protected_route(client):
    response = client.post(
        "/api/v1/events", json={}, headers={"Authorization": "Bearer junk"}
    )
    assert response.status_code == 401
    assert response.json() == {"detail": "Invalid token"}


def test_admin_lists_pending_with_owner(
    client, session, organizer, admin, make_event, auth_headers
):
    event = make_event(organizer, status="pending")
    make_event(organizer, title="Approved already")

    response = client.get("/api/v1/admin/events/pending", headers=auth_headers(admin))
    assert response.status_code == 200
    events = response.json()["events"]
    assert len(events) == 1
    listed = events[0]
    assert listed["id"] == event.id
    assert listed["submitted_at"]
    assert listed["owner"] == {
        "id": organizer.id,
        "first_name": organizer.first_name,
        "last_name": organizer.last_name,
        "email": organizer.email,
    }


def test_pending_event_with_missing_owner(
    client, session, organizer, admin, make_event, auth_headers
):
    event = make_event(organizer, status="pending")
    session.delete(session.get(User, organizer.id))
    session.commit()

    response = client.get("/api/v1/admin/events/pending", headers=auth_headers(admin))
    listed = response.json()["events"]
    assert [item["id"] for item in listed] == [event.id]
    assert listed[0]["owner"] is None


def test_moderation_requires_admin(client, organizer, volunteer, make_event, auth_headers):
    event = make_event(organizer, status="pending")
    for user in (organizer, volunteer):
        response = client.post(
            f"/api/v1/admin/events/{event.id}/approve", headers=auth_headers(user)
        )
        assert response.status_code == 403
    assert client.get("/api/v1/admin/events/pending").status_code == 401


def test_approve_and_deny(client, organizer, admin, make_event, auth_headers):
    event = make_event(organizer, status="pending")
    headers = auth_headers(admin)

    approved = client.post(f"/api/v1/admin/events/{event.id}/approve", headers=headers)
    assert approved.status_code == 200
    assert approved.json()["event"]["status"] == "approved"
    assert client.get(f"/api/v1/events/{event.id}").status_code == 200

    denied = client.post(f"/api/v1/admin/events/{event.id}/deny", headers=headers)
    assert denied.status_code == 200
    assert denied.json()["event"]["status"] == "denied"
    assert client.get(f"/api/v1/events/{event.id}").status_code == 404

    missing = client.post("/api/v1/admin/events/nope/approve", headers=headers)
    assert missing.status_code == 404
    assert missing.json() == {"detail": "Event not found"}


def test_rsvp_create_then_update(client, organizer, volunteer, make_event, auth_headers):
    event = make_event(organizer)
    headers = auth_headers(volunteer)
    path = f"/api/v1/events/{event.id}/rsvp"

    created = client.post(path, json={"hours_committed": 2}, headers=headers)
    assert created.status_code == 201
    registration = created.json()["registration"]
    assert registration["hours_committed"] == 2

    updated = client.post(path, json={"hours_committed": "3.5"}, headers=headers)
    assert updated.status_code == 200
    assert updated.json()["registration"]["id"] == registration["id"]
    assert updated.json()["registration"]["hours_committed"] == 3.5

    unchanged = client.post(path, headers=headers)
    assert unchanged.status_code == 200
    assert unchanged.json()["registration"]["hours_committed"] == 3.5


@pytest.mark.parametrize("hours", [-1, "abc", "", True, [1]])
def test_rsvp_rejects_bad_hours(
    client, organizer, volunteer, make_event, auth_headers, hours
):
    event = make_event(organizer)
    response = client.post(
        f"/api/v1/events/{event.id}/rsvp",
        json={"hours_committed": hours},
        headers=auth_headers(volunteer),
    )
    assert response.status_code == 400
    assert response.json() == {
        "detail": "hours_committed must be a non-negative number"
    }


def test_rsvp_malformed_body_is_bad_request(
    client, organizer, volunteer, make_event, auth_headers
):
    event = make_event(organizer)
    response = client.post(
        f"/api/v1/events/{event.id}/rsvp",
        json=["not", "an", "object"],
        headers=auth_headers(volunteer),
    )
    assert response.status_code == 400
    assert isinstance(response.json()["detail"], list)


def test_rsvp_unapproved_event_is_not_found(
    client, organizer, volunteer, make_event, auth_headers
):
    event = make_event(organizer, status="pending")
    response = client.post(
        f"/api/v1/events/{event.id}/rsvp", headers=auth_headers(volunteer)
    )
    assert response.status_code == 404


def test_rsvp_role_is_volunteer_only(client, organizer, make_event, auth_headers):
    event = make_event(organizer)
    response = client.post(
        f"/api/v1/events/{event.id}/rsvp", headers=auth_headers(organizer)
    )
    assert response.status_code == 403


def test_rsvp_event_full(client, organizer, make_user, make_event, auth_headers):
    event = make_event(organizer, capacity=1)
    first = make_user()
    second = make_user()
    path = f"/api/v1/events/{event.id}/rsvp"

    assert client.post(path, headers=auth_headers(first)).status_code == 201
    full = client.post(path, headers=auth_headers(second))
    assert full.status_code == 400
    assert full.json() == {"error": "EventFull", "message": "Event is full"}


def test_cancel_rsvp(client, session, organizer, volunteer, make_event, auth_headers):
    event = make_event(organizer)
    headers = auth_headers(volunteer)
    path = f"/api/v1/events/{event.id}/rsvp"
    client.post(path, headers=headers)

    canceled = client.delete(path, headers=headers)
    assert canceled.status_code == 200
    assert canceled.json()["message"] == "RSVP canceled"
    assert crud.count_registrations(session, event.id) == 0

    again = client.delete(path, headers=headers)
    assert again.status_code == 404
    assert again.json() == {"detail": "Registration not found"}


def test_save_unsave_and_list(client, organizer, volunteer, make_event, auth_headers):
    event = make_event(organizer)
    make_event(organizer, title="Not saved")
    headers = auth_headers(volunteer)
    path = f"/api/v1/events/{event.id}/save"

    first = client.post(path, headers=headers)
    assert first.status_code == 201
    second = client.post(path, headers=headers)
    assert second.status_code == 200
    assert second.json()["saved_event"]["id"] == first.json()["saved_event"]["id"]

    saved = client.get("/api/v1/events/saved", headers=headers)
    assert saved.status_code == 200
    assert [item["id"] for item in saved.json()["events"]] == [event.id]

    removed = client.delete(path, headers=headers)
    assert removed.status_code == 200
    assert removed.json()["message"] == "Event removed from saved list"
    assert client.delete(path, headers=headers).status_code == 404
    assert client.get("/api/v1/events/saved", headers=headers).json() == {
        "events": []
    }


def test_save_hidden_event_is_not_found(
    client, organizer, volunteer, make_event, auth_headers
):
    event = make_event(organizer, status="denied")
    response = client.post(
        f"/api/v1/events/{event.id}/save", headers=auth_headers(volunteer)
    )
    assert response.status_code == 404


def test_organizer_dashboard(
    client, session, organizer, make_user, make_event, auth_headers
):
    volunteers = [make_user() for _ in range(7)]
    counts = [2, 0, 5]
    events = [
        make_event(
            organizer, title=f"Event {index}", date=f"203{index}-01-01", capacity=6
        )
        for index in range(len(counts))
    ]
    offset = 0
    for event, count in zip(events, counts):
        for volunteer in volunteers[offset : offset + count]:
            session.add(Registration(user_id=volunteer.id, event_id=event.id))
        offset += count
    session.commit()

    response = client.get("/api/v1/organizer/events", headers=auth_headers(organizer))
    assert response.status_code == 200
    body = response.json()
    assert body["metrics"] == {
        "upcoming_events": 3,
        "events_created": 3,
        "total_volunteers": 7,
    }
    assert [item["volunteer_count"] for item in body["events"]] == counts
    assert [item["slots_available"] for item in body["events"]] == [4, 6, 1]
    assert {item["slots_total"] for item in body["events"]} == {6}
