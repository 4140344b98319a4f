"""Which application-state fields leave the device."""
from __future__ import annotations

from typing import Any, Dict, FrozenSet, Mapping

# Transient or device-specific fields. Never written to the remote row and
# never overwritten by remote data.
LOCAL_ONLY_KEYS: FrozenSet[str] = frozenset(
    {
        "currentSession",
        "isGeneratingRoadmap",
        "isAnalyzingTimetable",
        "sessionPostIts",
        "userId",
    }
)


def is_local_only(key: str) -> bool:
    return key in LOCAL_ONLY_KEYS


def plain_state(state: Mapping[str, Any]) -> Dict[str, Any]:
    """Drop callable entries (actions colocated with data)."""
    return {key: value for key, value in state.items() if not callable(value)}


def extract_syncable_state(state: Mapping[str, Any]) -> Dict[str, Any]:
    """Return the subset of `state` that is persisted remotely."""
    return {
        key: value
        for key, value in state.items()
        if key not in LOCAL_ONLY_KEYS and not callable(value)
    }
