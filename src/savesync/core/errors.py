"""Exception types for savesync.

Error taxonomy:
- ValidationError: Malformed input (local, not retryable)
- TransientTransportError: Remote tool failed or timed out (retryable)
- PersistenceError: Record set could not be stored (must propagate)
"""

from __future__ import annotations


class SaveSyncError(Exception):
    """Base exception for savesync errors."""


class ValidationError(SaveSyncError, ValueError):
    """Input could not be validated (e.g. malformed portable path)."""


class TransientTransportError(SaveSyncError):
    """The remote transport failed, timed out or could not be started.

    Attributes:
        remote_path: Remote path the operation was addressing, if any.
    """

    def __init__(self, message: str, remote_path: str | None = None) -> None:
        self.remote_path = remote_path
        super().__init__(message)


class PersistenceError(SaveSyncError):
    """A record set could not be saved.

    Attributes:
        item_id: Tracked item the record set belongs to.
        profile_id: Profile the record set belongs to.
    """

    def __init__(self, message: str, item_id: str, profile_id: str) -> None:
        self.item_id = item_id
        self.profile_id = profile_id
        super().__init__(f"{message} (item={item_id}, profile={profile_id})")
