"""Chunk planning, processing and job orchestration."""
from list_sync_core.sync.collaborators import (
    ArtifactHandle,
    ArtifactStager,
    BulkImporter,
    ImportStatus,
    ListDirectory,
    ListInfo,
    SourceRecordProvider,
    SubmitResult,
)
from list_sync_core.sync.dispatch import Dispatcher, InlineDispatcher, ThreadDispatcher
from list_sync_core.sync.orchestrator import SyncOrchestrator, derive_job_status
from list_sync_core.sync.plan import ChunkPlan, count_chunks, plan_chunks
from list_sync_core.sync.processor import ChunkOutcome, ChunkProcessor, PollPolicy
from list_sync_core.sync.resolver import DestinationResolver, DestinationTarget

__all__ = [
    "ArtifactHandle",
    "ArtifactStager",
    "BulkImporter",
    "ImportStatus",
    "ListDirectory",
    "ListInfo",
    "SourceRecordProvider",
    "SubmitResult",
    "Dispatcher",
    "InlineDispatcher",
    "ThreadDispatcher",
    "SyncOrchestrator",
    "derive_job_status",
    "ChunkPlan",
    "count_chunks",
    "plan_chunks",
    "ChunkOutcome",
    "ChunkProcessor",
    "PollPolicy",
    "DestinationResolver",
    "DestinationTarget",
]
