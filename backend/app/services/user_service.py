"""Helpers for working with users."""
from __future__ import annotations

from typing import Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.db.models.user import User


def get_or_create_user(db: Session, user_id: UUID, *, email: Optional[str] = None) -> User:
    """Fetch the user row for an auth identity, creating it on first sight."""
    user = db.get(User, user_id)
    if user:
        if email and user.email != email:
            user.email = email
        return user

    user = User(id=user_id, email=email)
    db.add(user)
    try:
        db.flush()
        return user
    except IntegrityError:
        db.rollback()
        existing = db.get(User, user_id)
        if existing:
            return existing
        raise
