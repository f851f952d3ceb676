from __future__ import annotations

from datetime import timedelta

import pytest

# Skip suite when FastAPI dependency is not present in local environment.
pytest.importorskip("fastapi")

from fastapi import Depends, Header, HTTPException
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from conftest import START, create_user
from skillhub import models, schemas
from skillhub.api import cancellation as cancellation_api
from skillhub.api import completion as completion_api
from skillhub.api import session as session_api
from skillhub.database import Base, get_db
from skillhub.main import app
from skillhub.utils.security import get_current_user


def _create_payload(counterpart, skills, **overrides) -> schemas.SessionCreate:
    python, guitar = skills
    data = dict(
        user_b_id=counterpart.id,
        skill_a_id=python.id,
        description_a="Python from zero",
        skill_b_id=guitar.id,
        description_b="Beginner guitar",
        start_date=START,
        expected_end_date=START + timedelta(days=10),
    )
    data.update(overrides)
    return schemas.SessionCreate(**data)


# ======================
# ROUTE FUNCTIONS CALLED DIRECTLY
# ======================
def test_create_and_accept_via_routes(db_session, alice, bob, skills):
    created = session_api.create_session(
        payload=_create_payload(bob, skills), current_user=alice, db=db_session
    )
    assert created["success"] is True
    session_id = created["session"]["id"]
    assert created["session"]["status"] == "pending"
    assert created["session"]["user_b_name"] == "Bob"

    responded = session_api.respond_to_session(
        session_id=session_id,
        payload=schemas.SessionRespond(action="accept"),
        current_user=bob,
        db=db_session,
    )
    assert responded["session"]["status"] == "active"
    assert responded["session"]["is_accepted"] is True


def test_route_maps_authorization_error_to_403(db_session, alice, pending_session):
    with pytest.raises(HTTPException) as exc_info:
        session_api.respond_to_session(
            session_id=pending_session.id,
            payload=schemas.SessionRespond(action="accept"),
            current_user=alice,
            db=db_session,
        )
    assert exc_info.value.status_code == 403


def test_route_maps_missing_session_to_404(db_session, alice):
    with pytest.raises(HTTPException) as exc_info:
        session_api.get_session(session_id=12345, current_user=alice, db=db_session)
    assert exc_info.value.status_code == 404


def test_stranger_cannot_read_session(db_session, carol, pending_session):
    with pytest.raises(HTTPException) as exc_info:
        session_api.get_session(session_id=pending_session.id, current_user=carol, db=db_session)
    assert exc_info.value.status_code == 403


def test_my_sessions_is_cached_until_a_transition(db_session, alice, bob, pending_session):
    first = session_api.get_my_sessions(status=None, current_user=alice, db=db_session)
    assert [s["status"] for s in first["sessions"]] == ["pending"]
    assert session_api.get_my_sessions(status=None, current_user=alice, db=db_session) is first

    session_api.respond_to_session(
        session_id=pending_session.id,
        payload=schemas.SessionRespond(action="reject"),
        current_user=bob,
        db=db_session,
    )
    refreshed = session_api.get_my_sessions(status=None, current_user=alice, db=db_session)
    assert [s["status"] for s in refreshed["sessions"]] == ["rejected"]


def test_sessions_between_includes_counter_offers(db_session, alice, bob, skills, pending_session):
    python, guitar = skills
    session_api.create_counter_offer(
        session_id=pending_session.id,
        payload=schemas.CounterOfferCreate(
            skill_a_id=python.id,
            description_a="Python, async only",
            skill_b_id=guitar.id,
            description_b="Guitar",
            start_date=START,
            message="Shorter please",
        ),
        current_user=bob,
        db=db_session,
    )
    result = session_api.get_sessions_between(other_user_id=bob.id, current_user=alice, db=db_session)
    assert len(result["sessions"]) == 1
    assert result["sessions"][0]["is_amended"] is True
    assert [o["message"] for o in result["sessions"][0]["counter_offers"]] == ["Shorter please"]


def test_completion_routes_report_derived_summary(db_session, alice, bob, active_session):
    completion_api.request_completion(
        payload=schemas.CompletionCreate(session_id=active_session.id), current_user=alice, db=db_session
    )
    rejected = completion_api.respond_to_completion(
        payload=schemas.CompletionRespond(session_id=active_session.id, action="reject", rejection_reason="not done"),
        current_user=bob,
        db=db_session,
    )
    assert rejected["session"]["status"] == "active"
    assert rejected["session"]["completion"]["requested_by"] is None
    assert rejected["session"]["completion"]["rejection_reason"] == "not done"
    assert rejected["updated_requests"] == 1


def test_duplicate_completion_route_is_400(db_session, alice, active_session):
    payload = schemas.CompletionCreate(session_id=active_session.id)
    completion_api.request_completion(payload=payload, current_user=alice, db=db_session)
    with pytest.raises(HTTPException) as exc_info:
        completion_api.request_completion(payload=payload, current_user=alice, db=db_session)
    assert exc_info.value.status_code == 400


def test_get_cancellation_without_any_is_404(db_session, alice, active_session):
    with pytest.raises(HTTPException) as exc_info:
        cancellation_api.get_cancellation(session_id=active_session.id, current_user=alice, db=db_session)
    assert exc_info.value.status_code == 404


# ======================
# HTTP LAYER
# ======================
@pytest.fixture
def client():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    TestingSession = sessionmaker(bind=engine)

    def override_get_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    def user_from_header(x_user_id: int = Header(...), db: Session = Depends(get_db)):
        user = db.get(models.User, x_user_id)
        if user is None:
            raise HTTPException(status_code=401, detail="Could not validate credentials")
        return user

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = user_from_header
    with TestClient(app) as test_client:
        db = TestingSession()
        # plain ids; the ORM instances detach once this session closes
        test_client.users = {
            name: create_user(db, f"{name}@test.edu", name.title()).id
            for name in ("alice", "bob", "carol")
        }
        db.close()
        yield test_client
    app.dependency_overrides.clear()
    engine.dispose()


def _as(client, name):
    return {"X-User-Id": str(client.users[name])}


def _add_skill(client, name, title):
    response = client.post("/skills/", data={"title": title, "skill_type": "offer"}, headers=_as(client, name))
    assert response.status_code == 201, response.text
    return response.json()["user_skill"]["skill_id"]


def _propose(client):
    python = _add_skill(client, "alice", "Python")
    guitar = _add_skill(client, "bob", "Guitar")
    response = client.post(
        "/sessions/",
        json={
            "user_b_id": client.users["bob"],
            "skill_a_id": python,
            "description_a": "Python from zero",
            "skill_b_id": guitar,
            "description_b": "Beginner guitar",
            "start_date": START.isoformat(),
        },
        headers=_as(client, "alice"),
    )
    assert response.status_code == 201, response.text
    return response.json()["session"]["id"]


def test_http_completion_flow_with_legacy_put(client):
    session_id = _propose(client)
    accepted = client.patch(f"/sessions/{session_id}/respond", json={"action": "accept"}, headers=_as(client, "bob"))
    assert accepted.json()["session"]["status"] == "active"

    assert client.post(
        "/sessions/completion-new", json={"session_id": session_id}, headers=_as(client, "alice")
    ).status_code == 201

    rejected = client.put(
        "/sessions/completion-new",
        json={"session_id": session_id, "action": "reject", "rejection_reason": "not done"},
        headers=_as(client, "bob"),
    )
    assert rejected.status_code == 200
    assert rejected.json()["success"] is True
    assert rejected.json()["session"]["status"] == "active"

    listed = client.get(f"/sessions/completion-new?session_id={session_id}", headers=_as(client, "alice"))
    assert listed.status_code == 200
    assert [r["status"] for r in listed.json()["completion_requests"]] == ["rejected"]

    client.post("/sessions/completion-new", json={"session_id": session_id}, headers=_as(client, "alice"))
    approved = client.patch(
        "/sessions/completion-new",
        json={"session_id": session_id, "action": "approve"},
        headers=_as(client, "bob"),
    )
    assert approved.json()["session"]["status"] == "completed"
    assert approved.json()["session"]["completion"]["approved_by"] == client.users["bob"]


def test_http_cancellation_and_progress(client):
    session_id = _propose(client)
    client.patch(f"/sessions/{session_id}/respond", json={"action": "accept"}, headers=_as(client, "bob"))

    progress = client.get(f"/sessions/{session_id}/progress", headers=_as(client, "alice"))
    assert len(progress.json()["progress"]) == 2
    updated = client.patch(
        f"/sessions/{session_id}/progress", json={"completion_percentage": 100}, headers=_as(client, "alice")
    )
    assert updated.json()["progress"]["status"] == "completed"

    created = client.post(
        f"/sessions/{session_id}/cancel",
        json={"reason": "schedule conflict", "description": "New shifts"},
        headers=_as(client, "bob"),
    )
    assert created.status_code == 201
    fetched = client.get(f"/sessions/{session_id}/cancel", headers=_as(client, "alice"))
    assert fetched.json()["cancellation_request"]["reason"] == "schedule conflict"

    agreed = client.patch(f"/sessions/{session_id}/cancel", json={"action": "agree"}, headers=_as(client, "alice"))
    assert agreed.status_code == 200
    assert agreed.json()["session"]["status"] == "canceled"


def test_http_error_envelope(client):
    session_id = _propose(client)

    own = client.patch(f"/sessions/{session_id}/respond", json={"action": "accept"}, headers=_as(client, "alice"))
    assert own.status_code == 403
    assert own.json() == {"success": False, "message": "You cannot respond to a session you proposed"}

    stranger = client.get(f"/sessions/{session_id}", headers=_as(client, "carol"))
    assert stranger.status_code == 403
    assert stranger.json()["success"] is False

    missing = client.patch("/sessions/999/cancel", json={"action": "agree"}, headers=_as(client, "bob"))
    assert missing.status_code == 404

    bad_action = client.patch(f"/sessions/{session_id}/respond", json={"action": "later"}, headers=_as(client, "bob"))
    assert bad_action.status_code == 400

    unknown_route = client.get("/does-not-exist")
    assert unknown_route.status_code == 404
    assert unknown_route.json()["success"] is False


def test_http_missing_field_is_bad_request(client):
    session_id = _propose(client)
    client.patch(f"/sessions/{session_id}/respond", json={"action": "accept"}, headers=_as(client, "bob"))

    response = client.post(
        f"/sessions/{session_id}/cancel", json={"description": "New shifts"}, headers=_as(client, "bob")
    )
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["message"] == "Invalid request body"
    assert ["body", "reason"] in [error["loc"] for error in body["errors"]]


def test_http_delete_pending_session(client):
    session_id = _propose(client)
    assert client.delete(f"/sessions/{session_id}", headers=_as(client, "bob")).status_code == 403
    deleted = client.delete(f"/sessions/{session_id}", headers=_as(client, "alice"))
    assert deleted.json() == {"success": True, "message": "Session deleted successfully"}
    assert client.get(f"/sessions/{session_id}", headers=_as(client, "alice")).status_code == 404


def test_register_login_and_bearer_token(client):
    app.dependency_overrides.pop(get_current_user)

    registered = client.post(
        "/auth/register", json={"name": "Dana", "email": "Dana@Test.edu", "password": "secret123"}
    )
    assert registered.status_code == 201
    login = client.post("/auth/login", json={"email": "dana@test.edu", "password": "secret123"})
    assert login.status_code == 200
    token = login.json()["access_token"]

    mine = client.get("/sessions/my", headers={"Authorization": f"Bearer {token}"})
    assert mine.status_code == 200
    assert mine.json()["sessions"] == []

    assert client.get("/sessions/my").status_code == 401
    assert client.post("/auth/login", json={"email": "dana@test.edu", "password": "wrong"}).status_code == 401


def test_health(client):
    assert client.get("/health").json()["status"] == "healthy"
