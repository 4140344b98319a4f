"""User ORM model."""
from __future__ import annotations

from sqlalchemy import Column, DateTime, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.db.base import Base


class User(Base):
    __tablename__ = "users"

    # Mirrors the Supabase Auth identity; ids are issued by the auth provider.
    id = Column(UUID(as_uuid=True), primary_key=True)
    email = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    data = relationship("UserData", back_populates="user", uselist=False, passive_deletes=True)
