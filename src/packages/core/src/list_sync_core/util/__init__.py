"""Utility modules."""
from list_sync_core.util.ids import generate_id, make_chunk_id
from list_sync_core.util.time import seconds_between, utc_now_iso
from list_sync_core.util.errors import (
    ErrorKind,
    SyncError,
    ValidationError,
    NotFoundError,
    ConflictError,
    CollaboratorError,
    SourceError,
    StagingError,
    DestinationError,
    DestinationNotFoundError,
    NoValidRecordsError,
    suggestion_for,
)

__all__ = [
    "generate_id",
    "make_chunk_id",
    "utc_now_iso",
    "seconds_between",
    "ErrorKind",
    "SyncError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "CollaboratorError",
    "SourceError",
    "StagingError",
    "DestinationError",
    "DestinationNotFoundError",
    "NoValidRecordsError",
    "suggestion_for",
]
