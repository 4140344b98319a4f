"""Per-user synced application state."""
from __future__ import annotations

from sqlalchemy import Column, DateTime, ForeignKey, Integer, func, text as sa_text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.db.base import Base
from app.db.types import JSONBCompat


class UserData(Base):
    __tablename__ = "user_data"

    # One row per user; upserts are keyed on this column.
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    state = Column(JSONBCompat, nullable=False, default=dict)
    version = Column(Integer, nullable=False, server_default=sa_text("0"))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    user = relationship("User", back_populates="data")
