"""HTTP client for the remote per-user state endpoint."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel, Field, ValidationError, field_validator

from app.sync.errors import MalformedRemoteState, RemoteUnavailable
from app.sync.state import HAS_COMPLETED_ONBOARDING, OBJECTIVE

logger = logging.getLogger(__name__)

SYNC_PATH = "/sync"


@dataclass
class RemoteState:
    state: Dict[str, Any]
    version: int
    updated_at: Optional[datetime] = None


class _RemoteRow(BaseModel):
    state: Dict[str, Any]
    version: int = Field(ge=0)
    updated_at: Optional[datetime] = None

    @field_validator("state")
    @classmethod
    def _check_special_fields(cls, value: Dict[str, Any]) -> Dict[str, Any]:
        # The reconciler relies on these two shapes; anything else is rejected whole.
        objective = value.get(OBJECTIVE)
        if objective is not None and not isinstance(objective, dict):
            raise ValueError("objective must be an object or null")
        onboarding = value.get(HAS_COMPLETED_ONBOARDING)
        if onboarding is not None and not isinstance(onboarding, bool):
            raise ValueError("hasCompletedOnboarding must be a boolean")
        return value


class RemoteStateClient:
    """
    Reads and upserts the caller's state row via `GET/POST /sync`.

    The bearer token identifies the user; the server keys the row on it.
    Every failure surfaces as `RemoteUnavailable` so callers can fail open.
    """

    def __init__(
        self,
        access_token: str,
        *,
        base_url: str,
        timeout: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._headers: Dict[str, str] = {}
        self.set_token(access_token)
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url.rstrip("/"), timeout=timeout)

    def set_token(self, access_token: str) -> None:
        """Swap in a refreshed access token for subsequent requests."""
        if not access_token:
            raise ValueError("access_token is required")
        self._headers = {"Authorization": f"Bearer {access_token}"}

    @property
    def access_token(self) -> str:
        return self._headers["Authorization"].removeprefix("Bearer ")

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "RemoteStateClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # --------------- Public API ---------------
    async def load(self) -> Optional[RemoteState]:
        """Return the stored state, or None when the user has no row yet."""
        body = await self._request("GET")
        data = body.get("data")
        if data is None:
            return None
        try:
            row = _RemoteRow.model_validate(data)
        except ValidationError as exc:
            raise MalformedRemoteState(f"Unexpected remote state payload: {exc.error_count()} errors") from exc
        return RemoteState(state=row.state, version=row.version, updated_at=row.updated_at)

    async def save(self, state: Dict[str, Any], version: int) -> int:
        """Upsert `state` with `version`; returns the version the server stored."""
        body = await self._request("POST", json={"state": state, "version": version})
        if body.get("success") is not True:
            raise RemoteUnavailable("Remote save was not acknowledged")
        stored = body.get("version")
        return stored if isinstance(stored, int) else version

    # --------------- Internal ---------------
    async def _request(self, method: str, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            resp = await self._client.request(method, SYNC_PATH, json=json, headers=self._headers)
        except httpx.HTTPError as exc:
            raise RemoteUnavailable(f"{method} {SYNC_PATH} failed: {exc}") from exc

        if resp.status_code in (401, 403):
            raise RemoteUnavailable(f"{method} {SYNC_PATH} unauthorized (status={resp.status_code})")
        if resp.status_code != 200:
            raise RemoteUnavailable(f"{method} {SYNC_PATH} returned status {resp.status_code}")

        try:
            body = resp.json()
        except ValueError as exc:
            raise MalformedRemoteState(f"{method} {SYNC_PATH} returned invalid JSON") from exc
        if not isinstance(body, dict):
            raise MalformedRemoteState(f"{method} {SYNC_PATH} returned {type(body).__name__}, expected object")
        return body
