from __future__ import annotations

from uuid import UUID, uuid4

import pytest
from fastapi import Header, HTTPException
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.auth import AuthenticatedUser, get_current_user
from app.db.deps import get_db
from app.db.models.user import User
from app.db.models.user_data import UserData
from app.main import app


def _fake_current_user(authorization: str | None = Header(default=None)) -> AuthenticatedUser:
    # Tests use the user id itself as the bearer token.
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Unauthorized")
    return AuthenticatedUser(id=UUID(authorization.removeprefix("Bearer ")), email="focus@example.com")


@pytest.fixture()
def client():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):  # pragma: no cover - sqlite setup
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    User.__table__.create(bind=engine)
    UserData.__table__.create(bind=engine)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = _fake_current_user
    with TestClient(app) as test_client:
        yield test_client, TestingSessionLocal
    app.dependency_overrides.clear()


def _auth(user_id: UUID) -> dict:
    return {"Authorization": f"Bearer {user_id}"}


def _objective(created_at: str = "2026-01-01T00:00:00+00:00") -> dict:
    return {
        "id": "obj-1",
        "somedayGoal": "Ship the book",
        "monthGoal": "Finish part one",
        "weekGoal": "Draft chapter 3",
        "todayGoal": "Outline chapter 3",
        "rightNowAction": "Open the outline doc",
        "title": "Outline chapter 3",
        "deadline": "2026-12-31T00:00:00+00:00",
        "why": "Finally done",
        "status": "active",
        "createdAt": created_at,
        "progress": 10,
    }


def test_load_returns_null_for_new_user(client):
    test_client, _ = client
    resp = test_client.get("/sync", headers=_auth(uuid4()))

    assert resp.status_code == 200
    assert resp.json()["data"] is None


def test_save_creates_row_with_version_one(client):
    test_client, session_factory = client
    user_id = uuid4()

    resp = test_client.post(
        "/sync",
        json={"state": {"objective": _objective(), "hasCompletedOnboarding": True}, "version": 1},
        headers=_auth(user_id),
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["version"] == 1

    with session_factory() as db:
        row = db.get(UserData, user_id)
        assert row is not None
        assert row.version == 1
        assert row.state["objective"]["id"] == "obj-1"
        user = db.get(User, user_id)
        assert user.email == "focus@example.com"


def test_load_returns_saved_state(client):
    test_client, _ = client
    user_id = uuid4()
    test_client.post("/sync", json={"state": {"sessions": [{"id": "s1"}]}, "version": 3}, headers=_auth(user_id))

    resp = test_client.get("/sync", headers=_auth(user_id))
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["version"] == 3
    assert data["state"] == {"sessions": [{"id": "s1"}]}
    assert data["updated_at"]


def test_save_without_version_advances_counter(client):
    test_client, _ = client
    user_id = uuid4()

    first = test_client.post("/sync", json={"state": {"language": "en"}}, headers=_auth(user_id))
    second = test_client.post("/sync", json={"state": {"language": "fr"}}, headers=_auth(user_id))

    assert first.json()["version"] == 1
    assert second.json()["version"] == 2
    loaded = test_client.get("/sync", headers=_auth(user_id)).json()["data"]
    assert loaded["state"] == {"language": "fr"}


def test_save_replaces_whole_state(client):
    test_client, _ = client
    user_id = uuid4()
    test_client.post("/sync", json={"state": {"a": 1, "b": 2}, "version": 1}, headers=_auth(user_id))
    test_client.post("/sync", json={"state": {"b": 3}, "version": 2}, headers=_auth(user_id))

    loaded = test_client.get("/sync", headers=_auth(user_id)).json()["data"]
    assert loaded["state"] == {"b": 3}
    assert loaded["version"] == 2


def test_save_strips_local_only_keys(client):
    test_client, session_factory = client
    user_id = uuid4()

    resp = test_client.post(
        "/sync",
        json={
            "state": {
                "objective": None,
                "currentSession": {"id": "live"},
                "userId": str(user_id),
                "sessionPostIts": [],
                "isGeneratingRoadmap": True,
            },
            "version": 1,
        },
        headers=_auth(user_id),
    )
    assert resp.status_code == 200

    with session_factory() as db:
        row = db.get(UserData, user_id)
        assert row.state == {"objective": None}


def test_rows_are_isolated_per_user(client):
    test_client, _ = client
    alice, bob = uuid4(), uuid4()
    test_client.post("/sync", json={"state": {"firstName": "Alice"}, "version": 1}, headers=_auth(alice))

    assert test_client.get("/sync", headers=_auth(bob)).json()["data"] is None
    assert test_client.get("/sync", headers=_auth(alice)).json()["data"]["state"]["firstName"] == "Alice"


def test_missing_bearer_is_unauthorized(client):
    test_client, _ = client

    assert test_client.get("/sync").status_code == 401
    assert test_client.post("/sync", json={"state": {}}).status_code == 401


def test_rejects_non_object_state(client):
    test_client, _ = client

    resp = test_client.post("/sync", json={"state": [1, 2], "version": 1}, headers=_auth(uuid4()))
    assert resp.status_code == 422


def test_rejects_negative_version(client):
    test_client, _ = client

    resp = test_client.post("/sync", json={"state": {}, "version": -1}, headers=_auth(uuid4()))
    assert resp.status_code == 422
