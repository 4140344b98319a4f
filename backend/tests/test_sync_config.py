from __future__ import annotations

from app.sync.config import LOCAL_ONLY_KEYS, extract_syncable_state, plain_state
from app.sync.state import default_app_state


def test_local_only_keys_are_the_device_transient_fields():
    assert LOCAL_ONLY_KEYS == {
        "currentSession",
        "isGeneratingRoadmap",
        "isAnalyzingTimetable",
        "sessionPostIts",
        "userId",
    }


def test_extract_excludes_local_only_and_callables():
    state = {
        "objective": {"id": "o1"},
        "sessions": [],
        "currentSession": {"id": "live"},
        "userId": "u1",
        "setObjective": lambda data: None,
        "plannedSessionsPerDay": 2,
    }

    assert extract_syncable_state(state) == {
        "objective": {"id": "o1"},
        "sessions": [],
        "plannedSessionsPerDay": 2,
    }


def test_extract_keeps_every_other_default_field():
    state = default_app_state()
    syncable = extract_syncable_state(state)

    assert set(syncable) == set(state) - LOCAL_ONLY_KEYS
    assert all(syncable[key] == state[key] for key in syncable)


def test_extract_returns_new_mapping():
    state = {"objective": None}
    syncable = extract_syncable_state(state)
    syncable["objective"] = {"id": "changed"}

    assert state["objective"] is None


def test_plain_state_only_drops_callables():
    state = {"userId": "u1", "action": print, "sessions": []}

    assert plain_state(state) == {"userId": "u1", "sessions": []}
