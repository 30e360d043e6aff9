"""Domain exceptions for diff tracking operations."""
from enum import StrEnum


class DiffErrorKind(StrEnum):
    """Closed set of failure kinds; callers can match on ``error.kind`` exhaustively."""

    PATCH = "patch"
    STORAGE = "storage"
    DIFF_NOT_FOUND = "diff_not_found"
    INVALID_METADATA_STRUCTURE = "invalid_metadata_structure"


class DiffTrackingError(Exception):
    """Base exception for diff tracking failures."""

    kind: DiffErrorKind

    def __init__(self, message: str) -> None:
        super().__init__(message)


class PatchError(DiffTrackingError):
    """Raised when unified diff text could not be generated."""

    kind = DiffErrorKind.PATCH


class StorageError(DiffTrackingError):
    """
    Raised when a backend read or write fails.

    Not retried at this layer. Also raised when retention pruning cannot
    delete the records needed to get back under the limit.
    """

    kind = DiffErrorKind.STORAGE


class DiffNotFoundError(DiffTrackingError):
    """Raised when a diff id does not exist."""

    kind = DiffErrorKind.DIFF_NOT_FOUND

    def __init__(self, diff_id: str) -> None:
        self.diff_id = diff_id
        super().__init__(f"Diff not found: {diff_id}")


class InvalidMetadataStructureError(DiffTrackingError):
    """
    Raised when a stored metadata snapshot lacks its page id.

    Indicates corrupted history; the page id is never guessed.
    """

    kind = DiffErrorKind.INVALID_METADATA_STRUCTURE

    def __init__(self, diff_id: str, reason: str) -> None:
        self.diff_id = diff_id
        self.reason = reason
        super().__init__(f"Invalid metadata snapshot on diff {diff_id}: {reason}")
