from __future__ import annotations

import importlib
from uuid import UUID, uuid4

import pytest
from fastapi import Header
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.auth import AuthenticatedUser, get_current_user
from app.db.deps import get_db
from app.db.models.user import User
from app.db.models.user_data import UserData
from app.observability import client as client_module


class _DummyTrace:
    def __init__(self, name, metadata=None, **kwargs):
        self.name = name
        self.metadata = metadata or {}
        self.ended = False

    def update(self, metadata=None, **kwargs):
        if metadata:
            self.metadata = metadata

    def end(self):
        self.ended = True


class _DummyOpik:
    instances = []

    def __init__(self, *args, **kwargs):
        self.traces = []
        _DummyOpik.instances.append(self)

    def trace(self, **kwargs):
        trace = _DummyTrace(kwargs.get("name"), metadata=kwargs.get("metadata"))
        self.traces.append(trace)
        return trace


@pytest.fixture()
def sqlite_override():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )

    @event.listens_for(engine, "connect")
    def set_fk(conn, record):  # pragma: no cover - sqlite setup
        cursor = conn.cursor()
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

    return override_get_db


def _fake_current_user(authorization: str | None = Header(default=None)) -> AuthenticatedUser:
    return AuthenticatedUser(id=UUID(authorization.removeprefix("Bearer ")), email=None)


def test_sync_save_is_traced_with_opik_enabled(monkeypatch, sqlite_override):
    monkeypatch.setenv("OPIK_ENABLED", "true")
    monkeypatch.setenv("OPIK_PROJECT", "onefocus-test")
    monkeypatch.setenv("OPIK_API_KEY", "test-key")

    import app.core.config as config_module
    import app.main as main_module

    importlib.reload(config_module)
    importlib.reload(client_module)
    monkeypatch.setattr(client_module, "Opik", _DummyOpik)
    client_module.reset_opik_client()
    _DummyOpik.instances.clear()
    reloaded_main = importlib.reload(main_module)

    reloaded_main.app.dependency_overrides[get_db] = sqlite_override
    reloaded_main.app.dependency_overrides[get_current_user] = _fake_current_user

    user_id = uuid4()
    try:
        with TestClient(reloaded_main.app) as test_client:
            assert test_client.get("/health").status_code == 200
            resp = test_client.post(
                "/sync",
                json={"state": {"hasCompletedOnboarding": True}, "version": 1},
                headers={"Authorization": f"Bearer {user_id}"},
            )
            assert resp.status_code == 200
    finally:
        reloaded_main.app.dependency_overrides.clear()

    assert len(_DummyOpik.instances) == 1
    traces = _DummyOpik.instances[0].traces
    save_traces = [t for t in traces if t.name == "sync.save"]
    assert len(save_traces) == 1
    assert save_traces[0].metadata["user_id"] == str(user_id)
    assert save_traces[0].ended is True
    assert any(t.name == "metric:sync.save.version" for t in traces)

    monkeypatch.setenv("OPIK_ENABLED", "false")
    monkeypatch.delenv("OPIK_API_KEY", raising=False)
    importlib.reload(config_module)
    importlib.reload(client_module)
    client_module.reset_opik_client()
    importlib.reload(main_module)
