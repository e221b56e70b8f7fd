"""Sync error taxonomy."""
from enum import Enum


class ErrorKind(str, Enum):
    """Error categories recorded on failed chunks."""

    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    SOURCE = "source"
    STAGING = "staging"
    DESTINATION = "destination"
    DESTINATION_NOT_FOUND = "destination_not_found"
    NO_VALID_RECORDS = "no_valid_records"
    NETWORK = "network"
    INTERNAL = "internal"


SUGGESTIONS: dict[ErrorKind, str] = {
    ErrorKind.SOURCE: "Check the source API key and that the segment or list still exists, then retry the chunk.",
    ErrorKind.STAGING: "Check the staging storage configuration (bucket or public directory), then retry the chunk.",
    ErrorKind.DESTINATION: "Check the destination credentials and account limits, then retry the chunk.",
    ErrorKind.DESTINATION_NOT_FOUND: "The destination list no longer exists. Pick another list or let the import create one.",
    ErrorKind.NO_VALID_RECORDS: "No records in this chunk had a contact number. Map a phone field to the key field.",
    ErrorKind.NETWORK: "A network error interrupted the chunk. Retrying usually succeeds.",
    ErrorKind.INTERNAL: "An unexpected error occurred. Retry the chunk; if it fails again check the worker logs.",
}


def suggestion_for(kind: "ErrorKind | str | None") -> str | None:
    """Return the user hint for an error kind."""
    if kind is None:
        return None
    try:
        return SUGGESTIONS.get(ErrorKind(kind))
    except ValueError:
        return None


class SyncError(Exception):
    """Base class for sync errors."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str, kind: ErrorKind | None = None):
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind


class ValidationError(SyncError):
    """Invalid job input; the job is never persisted."""

    kind = ErrorKind.VALIDATION


class NotFoundError(SyncError):
    """Unknown job or chunk id."""

    kind = ErrorKind.NOT_FOUND


class ConflictError(SyncError):
    """Operation conflicts with the chunk's current state."""

    kind = ErrorKind.CONFLICT


class CollaboratorError(SyncError):
    """A source, staging or destination call failed."""

    kind = ErrorKind.INTERNAL


class SourceError(CollaboratorError):
    kind = ErrorKind.SOURCE


class StagingError(CollaboratorError):
    kind = ErrorKind.STAGING


class DestinationError(CollaboratorError):
    kind = ErrorKind.DESTINATION


class DestinationNotFoundError(DestinationError):
    kind = ErrorKind.DESTINATION_NOT_FOUND


class NoValidRecordsError(StagingError):
    """Every record in a chunk was rejected by the field mapper."""

    kind = ErrorKind.NO_VALID_RECORDS
