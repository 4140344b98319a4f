"""Per-login sync session and the auth-driven manager around it."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, Optional

from app.core.config import settings
from app.core.context import user_id_ctx_var
from app.observability.metrics import log_metric
from app.observability.tracing import trace
from app.sync.errors import RemoteUnavailable
from app.sync.reconciler import reconcile
from app.sync.remote import RemoteState, RemoteStateClient
from app.sync.state import USER_ID
from app.sync.store import AppStore
from app.sync.writer import DebouncedWriter

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], RemoteStateClient]


class SyncSession:
    """
    Sync lifecycle for one authenticated user.

    Built at login and discarded at logout, so the version counter, the
    in-flight guard and the has-synced flag never leak across users.
    """

    def __init__(
        self,
        user_id: str,
        store: AppStore,
        client: RemoteStateClient,
        *,
        debounce_seconds: Optional[float] = None,
    ) -> None:
        self.user_id = user_id
        self.store = store
        self.client = client
        self.writer = DebouncedWriter(
            client,
            store.get_state,
            delay=settings.sync_debounce_seconds if debounce_seconds is None else debounce_seconds,
            user_id=user_id,
        )
        self._synced_user_id: Optional[str] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._closed = False

    @property
    def has_synced(self) -> bool:
        return self._synced_user_id == self.user_id

    async def start(self) -> bool:
        """Subscribe to store changes and run the one-time reconcile."""
        if self._unsubscribe is None:
            self._unsubscribe = self.store.subscribe(self._on_change)
        return await self.reconcile_once()

    async def reconcile_once(self) -> bool:
        """Merge remote state into the store; True only if a merge was applied."""
        if self.has_synced:
            return False

        token = user_id_ctx_var.set(self.user_id)
        applied = False
        try:
            with trace("sync.client.reconcile", metadata={"user_id": self.user_id}):
                try:
                    remote = await self.client.load()
                except RemoteUnavailable as exc:
                    logger.warning("Remote state unavailable, keeping local state: %s", exc)
                    log_metric("sync.client.reconcile.fallback", 1, metadata={"user_id": self.user_id})
                else:
                    applied = self._apply(remote)
        finally:
            # Set after the merged update so the merge itself never triggers a write.
            self._synced_user_id = self.user_id
            user_id_ctx_var.reset(token)

        log_metric("sync.client.reconcile.applied", 1 if applied else 0, metadata={"user_id": self.user_id})
        return applied

    def _apply(self, remote: Optional[RemoteState]) -> bool:
        if remote is None:
            logger.info("No remote state for user; first write will create it")
            return False

        self.writer.version = remote.version
        if not remote.state:
            logger.info("Remote row is empty at version %s; nothing to merge", remote.version)
            return False

        merged = reconcile(self.store.get_state(), remote.state)
        if merged:
            self.store.set_state(merged)
        logger.info("Reconciled %d remote fields at version %s", len(merged), remote.version)
        return True

    def _on_change(self, state: Dict[str, Any], previous: Dict[str, Any]) -> None:
        if self._closed or not self.has_synced:
            return
        try:
            self.writer.schedule()
        except RuntimeError:
            # Mutations made outside the event loop are captured by the next flush.
            logger.debug("No running loop; write deferred to next flush")

    async def flush(self) -> bool:
        if not self.has_synced:
            logger.debug("Flush before reconcile completed; skipping")
            return False
        return await self.writer.flush()

    async def close(self, *, flush: bool = True) -> None:
        if self._closed:
            return
        try:
            if flush:
                await self.writer.wait_idle()
                await self.flush()
        finally:
            self._closed = True
            if self._unsubscribe is not None:
                self._unsubscribe()
                self._unsubscribe = None
            await self.writer.aclose()
            await self.client.aclose()


class SyncManager:
    """
    Reacts to auth changes for a device-local store.

    A different user signing in wipes the local data first; signing out
    flushes and clears. Repeated notifications for the same user keep the
    session and only refresh its access token.
    """

    def __init__(
        self,
        store: AppStore,
        client_factory: Optional[ClientFactory] = None,
        *,
        debounce_seconds: Optional[float] = None,
    ) -> None:
        self.store = store
        self._client_factory = client_factory or default_client_factory
        self._debounce_seconds = debounce_seconds
        self.session: Optional[SyncSession] = None
        self._lock = asyncio.Lock()

    async def on_auth_state_change(self, user_id: Optional[str], access_token: Optional[str]) -> None:
        if not user_id or not access_token:
            await self.sign_out()
            return

        async with self._lock:
            if self.session is not None and self.session.user_id == user_id:
                # Same user, possibly with a refreshed token.
                self.session.client.set_token(access_token)
                return

            if self.session is not None:
                await self.session.close()
                self.session = None

            if not self.store.has_hydrated:
                self.store.hydrate()

            previous_user = self.store.get_state().get(USER_ID)
            if previous_user and previous_user != user_id:
                logger.info("Different user signed in on this device; clearing local data")
                self.store.clear_all_data()
            if previous_user != user_id:
                self.store.set_user_id(user_id)

            session = SyncSession(
                user_id,
                self.store,
                self._client_factory(access_token),
                debounce_seconds=self._debounce_seconds,
            )
            self.session = session
            await session.start()

    async def sign_out(self) -> None:
        async with self._lock:
            session, self.session = self.session, None
            if session is None:
                return
            await session.close()
            self.store.clear_all_data()
            self.store.set_user_id(None)

    async def handle_unload(self) -> bool:
        """Flush immediately, e.g. on page-visibility loss or shutdown."""
        if self.session is None:
            return False
        return await self.session.flush()


def default_client_factory(access_token: str) -> RemoteStateClient:
    return RemoteStateClient(
        access_token,
        base_url=settings.sync_api_base_url,
        timeout=settings.sync_request_timeout_seconds,
    )
