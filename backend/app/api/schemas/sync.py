"""Schemas for the per-user state sync endpoint."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class SyncedState(BaseModel):
    state: Dict[str, Any]
    version: int
    updated_at: Optional[datetime] = None


class SyncLoadResponse(BaseModel):
    data: Optional[SyncedState]
    request_id: str = ""


class SyncSaveRequest(BaseModel):
    state: Dict[str, Any]
    version: Optional[int] = Field(default=None, ge=0)


class SyncSaveResponse(BaseModel):
    success: bool
    version: int
    request_id: str
