"""Trailing-edge debounced writes of the syncable state."""
from __future__ import annotations

import asyncio
import logging
from enum import Enum
from time import perf_counter
from typing import Any, Callable, Dict, Optional

from app.observability.metrics import log_metric
from app.sync.config import extract_syncable_state
from app.sync.errors import RemoteUnavailable
from app.sync.remote import RemoteStateClient

logger = logging.getLogger(__name__)


class WriterState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    WRITING = "writing"


class DebouncedWriter:
    """
    Coalesces rapid mutations into one remote write after a quiet period.

    `schedule` re-arms the timer on every call; `flush` cancels it and writes
    immediately. Only one write is in flight at a time: a write requested
    while another is running is dropped, the next schedule/flush picks up the
    latest state. Failed writes are logged and dropped.
    """

    def __init__(
        self,
        client: RemoteStateClient,
        get_state: Callable[[], Dict[str, Any]],
        *,
        delay: float = 2.0,
        version: int = 0,
        user_id: Optional[str] = None,
    ) -> None:
        self._client = client
        self._get_state = get_state
        self._delay = delay
        self._user_id = user_id
        self.version = version
        self._handle: Optional[asyncio.TimerHandle] = None
        self._task: Optional[asyncio.Task] = None
        self._in_flight = False
        self.writes_attempted = 0
        self.writes_succeeded = 0

    @property
    def state(self) -> WriterState:
        if self._in_flight:
            return WriterState.WRITING
        if self._handle is not None:
            return WriterState.PENDING
        return WriterState.IDLE

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def schedule(self) -> None:
        """Arm (or re-arm) the debounce timer. Must run inside the event loop."""
        loop = asyncio.get_running_loop()
        self.cancel()
        self._handle = loop.call_later(self._delay, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    async def flush(self) -> bool:
        """Cancel any pending timer and write now."""
        self.cancel()
        return await self.write()

    async def wait_idle(self) -> None:
        """Wait for a timer-triggered write that is already running."""
        if self._task is not None and not self._task.done():
            await self._task

    async def write(self) -> bool:
        if self._in_flight:
            logger.debug("Sync write already in flight; dropping request")
            return False

        self._in_flight = True
        self.writes_attempted += 1
        new_version = self.version + 1
        start = perf_counter()
        try:
            snapshot = extract_syncable_state(self._get_state())
            stored = await self._client.save(snapshot, new_version)
        except RemoteUnavailable as exc:
            logger.warning("Sync write failed (version=%s): %s", new_version, exc)
            log_metric("sync.client.write.success", 0, metadata={"user_id": self._user_id})
            return False
        except Exception:
            logger.exception("Unexpected sync write failure (version=%s); dropping", new_version)
            log_metric("sync.client.write.success", 0, metadata={"user_id": self._user_id})
            return False
        finally:
            self._in_flight = False

        self.version = max(new_version, stored)
        self.writes_succeeded += 1
        latency_ms = (perf_counter() - start) * 1000
        logger.debug("Synced %d fields at version %s", len(snapshot), self.version)
        log_metric("sync.client.write.success", 1, metadata={"user_id": self._user_id})
        log_metric("sync.client.write.latency_ms", latency_ms, metadata={"user_id": self._user_id})
        return True

    def _fire(self) -> None:
        self._handle = None
        self._task = asyncio.get_running_loop().create_task(self.write())

    async def aclose(self) -> None:
        self.cancel()
        await self.wait_idle()
