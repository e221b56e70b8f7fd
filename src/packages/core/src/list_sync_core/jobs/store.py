"""Progress store interface."""
from abc import ABC, abstractmethod
from typing import Any

from list_sync_core.jobs.models import Chunk, Job, JobStatus

JOB_FIELDS = frozenset(Job.model_fields)
CHUNK_FIELDS = frozenset(Chunk.model_fields)

# Fields that belong to a chunk's run; cleared when the chunk is retried.
CHUNK_RUN_FIELDS = (
    "success_count",
    "error_count",
    "skipped_count",
    "artifact_location",
    "destination_import_id",
    "resolved_destination_list_id",
    "started_at",
    "completed_at",
    "error_message",
    "error_kind",
)


def check_fields(fields: dict[str, Any], allowed: frozenset[str], kind: str) -> None:
    """Reject updates that name unknown or immutable fields."""
    unknown = set(fields) - allowed
    if unknown:
        raise ValueError(f"Unknown {kind} fields: {sorted(unknown)}")
    if "id" in fields:
        raise ValueError(f"{kind} id cannot be updated")


class ProgressStore(ABC):
    """Authoritative job and chunk records.

    Updates are field-level merges: only the named fields change. Every
    implementation must be safe for concurrent reads and for concurrent
    writes to different chunks and jobs.
    """

    @abstractmethod
    def insert_job(self, job: Job) -> None:
        """Persist a new job."""

    @abstractmethod
    def insert_chunks(self, chunks: list[Chunk]) -> None:
        """Persist a job's planned chunks."""

    @abstractmethod
    def get_job(self, job_id: str) -> Job | None:
        """Get a job by ID, or None if it does not exist."""

    @abstractmethod
    def list_jobs(self, limit: int = 20) -> list[Job]:
        """List recent jobs, newest first."""

    @abstractmethod
    def get_chunk(self, chunk_id: str) -> Chunk | None:
        """Get a chunk by ID."""

    @abstractmethod
    def get_chunk_by_index(self, job_id: str, index: int) -> Chunk | None:
        """Get a chunk by its position in the job."""

    @abstractmethod
    def list_chunks(self, job_id: str) -> list[Chunk]:
        """List a job's chunks ordered by index."""

    @abstractmethod
    def update_job(self, job_id: str, **fields: Any) -> None:
        """Merge fields into a job."""

    @abstractmethod
    def update_chunk(self, chunk_id: str, **fields: Any) -> None:
        """Merge fields into a chunk."""

    @abstractmethod
    def claim_next_chunk(self, job_id: str, started_at: str) -> Chunk | None:
        """Atomically move the lowest pending chunk to processing.

        Returns None when another chunk of the job is in flight or when
        nothing is pending.
        """

    @abstractmethod
    def reset_chunk(self, chunk_id: str) -> bool:
        """Clear a chunk's run fields and mark it pending.

        Returns False, leaving the chunk untouched, if it is in flight.
        """

    @abstractmethod
    def replace_pending_chunks(
        self,
        job_id: str,
        chunks: list[Chunk],
        total_profiles: int,
        from_index: int = 0,
        count_known: bool = True,
    ) -> bool:
        """Swap the job's chunks from ``from_index`` on for a new plan.

        Refuses, changing nothing, if any chunk at or after ``from_index``
        has left pending. Sets the job's chunk total, profile total and
        whether that profile total is a real count.
        """

    @abstractmethod
    def transition_job(self, job_id: str, expected: JobStatus | str, **fields: Any) -> bool:
        """Merge fields into a job only while its status is still ``expected``."""

    @abstractmethod
    def recompute_job_totals(self, job_id: str) -> Job | None:
        """Recompute chunk and profile counters from the chunk rows in one step."""
