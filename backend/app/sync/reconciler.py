"""Merge a freshly loaded remote state into the already hydrated local one."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from app.sync.config import is_local_only
from app.sync.state import HAS_COMPLETED_ONBOARDING, OBJECTIVE, parse_timestamp

logger = logging.getLogger(__name__)

# Fields whose copies carry their own modification time; the newer copy wins
# and a null remote never erases a local record.
TIMESTAMPED_FIELDS = (OBJECTIVE,)

# Flags that only ever move from False to True.
MONOTONIC_TRUE_FIELDS = (HAS_COMPLETED_ONBOARDING,)


def last_modified(record: Any) -> Optional[datetime]:
    """`updatedAt` if present and parseable, else `createdAt`."""
    if not isinstance(record, Mapping):
        return None
    return parse_timestamp(record.get("updatedAt")) or parse_timestamp(record.get("createdAt"))


def _keep_local_record(local_value: Any, remote_value: Any) -> bool:
    if local_value is None:
        return False
    if remote_value is None:
        return True
    local_ts = last_modified(local_value)
    remote_ts = last_modified(remote_value)
    if remote_ts is None:
        return True
    if local_ts is None:
        return False
    # Ties keep local.
    return local_ts >= remote_ts


def reconcile(local: Mapping[str, Any], remote: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Return the partial update to apply to the local store.

    Only keys present in `remote` are considered. Local-only keys are skipped,
    timestamped records keep the newer copy, monotonic flags never regress,
    and every other remote value wins.
    """
    merged: Dict[str, Any] = {}
    kept_local = []

    for key, remote_value in remote.items():
        if is_local_only(key):
            continue

        local_value = local.get(key)
        if key in TIMESTAMPED_FIELDS:
            if _keep_local_record(local_value, remote_value):
                kept_local.append(key)
                continue
        elif key in MONOTONIC_TRUE_FIELDS:
            if local_value is True and remote_value is not True:
                kept_local.append(key)
                continue

        merged[key] = remote_value

    # A remote row missing a timestamped field entirely is treated like null.
    for key in TIMESTAMPED_FIELDS:
        if key not in remote and local.get(key) is not None:
            kept_local.append(key)

    if kept_local:
        logger.debug("Reconcile kept local values for %s", ", ".join(sorted(set(kept_local))))
    return merged
