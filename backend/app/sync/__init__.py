"""Client-side state store and its sync with the remote per-user row."""

from app.sync.config import LOCAL_ONLY_KEYS, extract_syncable_state
from app.sync.errors import MalformedRemoteState, RemoteUnavailable, SyncError
from app.sync.reconciler import reconcile
from app.sync.remote import RemoteState, RemoteStateClient
from app.sync.session import SyncManager, SyncSession
from app.sync.storage import LocalStateStorage, default_storage
from app.sync.store import AppStore
from app.sync.writer import DebouncedWriter, WriterState

__all__ = [
    "AppStore",
    "DebouncedWriter",
    "LOCAL_ONLY_KEYS",
    "LocalStateStorage",
    "MalformedRemoteState",
    "RemoteState",
    "RemoteStateClient",
    "RemoteUnavailable",
    "SyncError",
    "SyncManager",
    "SyncSession",
    "WriterState",
    "default_storage",
    "extract_syncable_state",
    "reconcile",
]
