"""Database base, models and session helpers for synced user state."""

from app.db.base import Base
from app.db import models  # noqa: F401  (imported for side effects)

__all__ = ["Base", "models"]
