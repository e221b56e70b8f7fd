"""Job management module."""
from list_sync_core.jobs.models import (
    Chunk,
    ChunkStatus,
    Job,
    JobCreateRequest,
    JobProgress,
    JobStatus,
    SourceType,
    IN_FLIGHT_CHUNK_STATUSES,
    TERMINAL_CHUNK_STATUSES,
    TERMINAL_JOB_STATUSES,
)
from list_sync_core.jobs.store import ProgressStore
from list_sync_core.jobs.repo import SQLiteProgressStore
from list_sync_core.jobs.memory import MemoryProgressStore

__all__ = [
    "Chunk",
    "ChunkStatus",
    "Job",
    "JobCreateRequest",
    "JobProgress",
    "JobStatus",
    "SourceType",
    "IN_FLIGHT_CHUNK_STATUSES",
    "TERMINAL_CHUNK_STATUSES",
    "TERMINAL_JOB_STATUSES",
    "ProgressStore",
    "SQLiteProgressStore",
    "MemoryProgressStore",
]
