"""Bearer-token authentication against Supabase Auth."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional
from uuid import UUID

import httpx
from fastapi import Header, HTTPException, status

from app.core.config import settings
from app.core.context import user_id_ctx_var

logger = logging.getLogger(__name__)


class AuthError(RuntimeError):
    """The bearer token could not be verified."""


class AuthNotConfigured(AuthError):
    """No Supabase project is configured for token verification."""


@dataclass(frozen=True)
class AuthenticatedUser:
    id: UUID
    email: Optional[str] = None


class SupabaseTokenVerifier:
    """
    Resolve an access token to a user via `GET /auth/v1/user`.

    The service role key (or the anon key) is sent as `apikey`; the user's
    own token goes in the Authorization header.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not base_url:
            raise AuthNotConfigured("supabase_url is required")
        if not api_key:
            raise AuthNotConfigured("a Supabase API key is required")
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport

    async def verify(self, token: str) -> AuthenticatedUser:
        if not token:
            raise AuthError("empty bearer token")

        headers = {"apikey": self._api_key, "Authorization": f"Bearer {token}"}
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                resp = await client.get("/auth/v1/user", headers=headers)
        except (httpx.TimeoutException, httpx.TransportError) as exc:
            raise AuthError("Supabase Auth unreachable") from exc

        if resp.status_code != 200:
            raise AuthError(f"token rejected (status={resp.status_code})")

        try:
            body = resp.json()
            user_id = UUID(str(body["id"]))
        except (ValueError, KeyError, TypeError) as exc:
            raise AuthError("Malformed user payload from Supabase Auth") from exc

        email = body.get("email") if isinstance(body.get("email"), str) else None
        return AuthenticatedUser(id=user_id, email=email)


@lru_cache
def get_token_verifier() -> SupabaseTokenVerifier:
    """Build the verifier from settings; cached for the process lifetime."""
    api_key = settings.supabase_service_role_key or settings.supabase_anon_key
    return SupabaseTokenVerifier(
        settings.supabase_url or "",
        api_key or "",
        timeout=settings.auth_timeout_seconds,
    )


def _extract_bearer(authorization: Optional[str]) -> str:
    if not authorization:
        return ""
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return ""
    return token.strip()


async def get_current_user(authorization: Optional[str] = Header(default=None)) -> AuthenticatedUser:
    """FastAPI dependency resolving the caller from its bearer token."""
    token = _extract_bearer(authorization)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    try:
        verifier = get_token_verifier()
    except AuthNotConfigured:
        logger.error("Sync auth requested but Supabase is not configured")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Auth not configured")

    try:
        user = await verifier.verify(token)
    except AuthError as exc:
        logger.info("Rejected bearer token: %s", exc)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized") from exc

    user_id_ctx_var.set(str(user.id))
    return user
