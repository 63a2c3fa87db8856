"""Sync engine exceptions."""


class SyncError(Exception):
    """Base exception for sync runs."""

    pass


class InitializationError(SyncError):
    """Raised when a run cannot start; nothing has been dispatched."""

    pass
