"""Error taxonomy for the BuddyMate data layer.

Only StorageError, SyncError and ValidationError reach callers.
DecodeError and DuplicateResolutionError are recovered locally and logged.
"""

from __future__ import annotations


class BuddyMateError(Exception):
    """Base class for all data-layer errors."""


class StorageError(BuddyMateError):
    """Raised when the key-value substrate fails to read or write."""


class DecodeError(BuddyMateError):
    """Describes a persisted payload that could not be decoded.

    The codec returns instances of this class instead of raising them.
    """

    def __init__(self, message: str, raw: str | None = None) -> None:
        super().__init__(message)
        self.raw = raw


class DuplicateResolutionError(BuddyMateError):
    """Raised when a single duplicate record cannot be deleted."""

    def __init__(self, record_id: str, message: str) -> None:
        super().__init__(message)
        self.record_id = record_id


class SyncError(BuddyMateError):
    """Raised when a sync run fails. Retryable; local data is untouched."""


class ValidationError(BuddyMateError):
    """Raised when a caller-supplied record fails shape or format checks."""
