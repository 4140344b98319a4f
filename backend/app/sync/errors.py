"""Exceptions raised by the client sync layer."""
from __future__ import annotations


class SyncError(RuntimeError):
    """Base error for state sync."""


class RemoteUnavailable(SyncError):
    """The remote state endpoint could not be reached or refused the call."""


class MalformedRemoteState(RemoteUnavailable):
    """The remote payload did not have the expected shape."""
