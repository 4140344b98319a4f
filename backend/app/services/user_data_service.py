"""Load and upsert the remote copy of a user's application state."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.db.models.user_data import UserData
from app.services.user_service import get_or_create_user
from app.sync.config import extract_syncable_state

logger = logging.getLogger(__name__)


@dataclass
class SaveResult:
    version: int
    created: bool


def load_user_data(db: Session, user_id: UUID) -> Optional[UserData]:
    """Return the stored row, or None for a user that never synced."""
    return db.get(UserData, user_id)


def save_user_data(
    db: Session,
    user_id: UUID,
    state: Dict[str, Any],
    *,
    version: Optional[int] = None,
    email: Optional[str] = None,
    _retry: bool = True,
) -> SaveResult:
    """
    Replace the stored state for `user_id` (insert on first write).

    Local-only keys are stripped even if a client sends them. When the caller
    omits `version` the stored counter is advanced by one. Commits on success;
    the caller owns rollback on failure.
    """
    syncable = extract_syncable_state(state)
    get_or_create_user(db, user_id, email=email)

    row = db.get(UserData, user_id)
    created = row is None
    if row is None:
        new_version = version if version is not None else 1
        row = UserData(user_id=user_id, state=syncable, version=new_version)
        db.add(row)
    else:
        new_version = version if version is not None else (row.version or 0) + 1
        if version is not None and version < (row.version or 0):
            logger.warning(
                "Client version %s is behind stored version %s; last write wins",
                version,
                row.version,
            )
        row.state = syncable
        row.version = new_version
        row.updated_at = datetime.now(timezone.utc)
        db.add(row)

    try:
        db.commit()
    except IntegrityError:
        # Another request created the row first; retry once as an update.
        db.rollback()
        if not (created and _retry):
            raise
        return save_user_data(db, user_id, state, version=version, email=email, _retry=False)

    db.refresh(row)
    return SaveResult(version=row.version, created=created)
