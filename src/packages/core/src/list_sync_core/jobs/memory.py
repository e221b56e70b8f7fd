"""In-process progress store."""
import threading
from typing import Any

import structlog

from list_sync_core.jobs.models import Chunk, ChunkStatus, IN_FLIGHT_CHUNK_STATUSES, Job, JobStatus
from list_sync_core.jobs.store import (
    CHUNK_FIELDS,
    CHUNK_RUN_FIELDS,
    JOB_FIELDS,
    ProgressStore,
    check_fields,
)
from list_sync_core.util import utc_now_iso

logger = structlog.get_logger()


class MemoryProgressStore(ProgressStore):
    """Dict-backed store guarded by a single re-entrant lock.

    Records are copied on the way in and out so callers never share
    mutable state with the store.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._jobs: dict[str, Job] = {}
        self._chunks: dict[str, Chunk] = {}
        self._job_chunks: dict[str, list[str]] = {}

    def insert_job(self, job: Job) -> None:
        with self._lock:
            self._jobs[job.id] = job.model_copy(deep=True)
            self._job_chunks.setdefault(job.id, [])

    def insert_chunks(self, chunks: list[Chunk]) -> None:
        with self._lock:
            for chunk in chunks:
                self._chunks[chunk.id] = chunk.model_copy(deep=True)
                self._job_chunks.setdefault(chunk.import_id, []).append(chunk.id)

    def get_job(self, job_id: str) -> Job | None:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy(deep=True) if job else None

    def list_jobs(self, limit: int = 20) -> list[Job]:
        with self._lock:
            jobs = sorted(
                self._jobs.values(), key=lambda j: j.created_at or "", reverse=True
            )
            return [j.model_copy(deep=True) for j in jobs[:limit]]

    def get_chunk(self, chunk_id: str) -> Chunk | None:
        with self._lock:
            chunk = self._chunks.get(chunk_id)
            return chunk.model_copy(deep=True) if chunk else None

    def get_chunk_by_index(self, job_id: str, index: int) -> Chunk | None:
        with self._lock:
            for chunk in self._chunks_of(job_id):
                if chunk.index == index:
                    return chunk.model_copy(deep=True)
            return None

    def list_chunks(self, job_id: str) -> list[Chunk]:
        with self._lock:
            return [c.model_copy(deep=True) for c in self._chunks_of(job_id)]

    def _chunks_of(self, job_id: str) -> list[Chunk]:
        chunks = [self._chunks[cid] for cid in self._job_chunks.get(job_id, [])]
        return sorted(chunks, key=lambda c: c.index)

    def update_job(self, job_id: str, **fields: Any) -> None:
        check_fields(fields, JOB_FIELDS, "job")
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return
            fields["updated_at"] = utc_now_iso()
            self._jobs[job_id] = job.model_validate({**job.model_dump(), **fields})

    def update_chunk(self, chunk_id: str, **fields: Any) -> None:
        check_fields(fields, CHUNK_FIELDS, "chunk")
        with self._lock:
            chunk = self._chunks.get(chunk_id)
            if chunk is None:
                return
            fields["updated_at"] = utc_now_iso()
            self._chunks[chunk_id] = chunk.model_validate({**chunk.model_dump(), **fields})

    def claim_next_chunk(self, job_id: str, started_at: str) -> Chunk | None:
        with self._lock:
            chunks = self._chunks_of(job_id)
            if any(c.status in IN_FLIGHT_CHUNK_STATUSES for c in chunks):
                return None
            pending = [c for c in chunks if c.status == ChunkStatus.PENDING]
            if not pending:
                return None
            chunk = pending[0]
            self.update_chunk(
                chunk.id,
                status=ChunkStatus.PROCESSING,
                started_at=started_at,
                completed_at=None,
                error_message=None,
                error_kind=None,
                attempts=chunk.attempts + 1,
            )
            return self.get_chunk(chunk.id)

    def reset_chunk(self, chunk_id: str) -> bool:
        with self._lock:
            chunk = self._chunks.get(chunk_id)
            if chunk is None or chunk.status in IN_FLIGHT_CHUNK_STATUSES:
                return False
            cleared = {k: 0 if k.endswith("_count") else None for k in CHUNK_RUN_FIELDS}
            self.update_chunk(chunk_id, status=ChunkStatus.PENDING, **cleared)
            return True

    def replace_pending_chunks(
        self,
        job_id: str,
        chunks: list[Chunk],
        total_profiles: int,
        from_index: int = 0,
        count_known: bool = True,
    ) -> bool:
        with self._lock:
            replaced = [c for c in self._chunks_of(job_id) if c.index >= from_index]
            if any(c.status != ChunkStatus.PENDING for c in replaced):
                return False
            for chunk in replaced:
                del self._chunks[chunk.id]
                self._job_chunks[job_id].remove(chunk.id)
            self.insert_chunks(chunks)
            self.update_job(
                job_id,
                total_chunks=len(self._job_chunks.get(job_id, [])),
                total_profiles=total_profiles,
                count_known=count_known,
            )
            return True

    def transition_job(self, job_id: str, expected: JobStatus | str, **fields: Any) -> bool:
        check_fields(fields, JOB_FIELDS, "job")
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status != JobStatus(expected):
                return False
            self.update_job(job_id, **fields)
            return True

    def recompute_job_totals(self, job_id: str) -> Job | None:
        with self._lock:
            if job_id not in self._jobs:
                return None
            chunks = self._chunks_of(job_id)
            finished = (ChunkStatus.COMPLETED, ChunkStatus.FAILED, ChunkStatus.MONITORING)
            self.update_job(
                job_id,
                total_chunks=len(chunks),
                completed_chunks=sum(1 for c in chunks if c.status == ChunkStatus.COMPLETED),
                failed_chunks=sum(1 for c in chunks if c.status == ChunkStatus.FAILED),
                processed_profiles=sum(c.profiles_count for c in chunks if c.status in finished),
                success_profiles=sum(c.success_count for c in chunks),
                error_profiles=sum(c.error_count for c in chunks),
                skipped_profiles=sum(c.skipped_count for c in chunks),
            )
            return self.get_job(job_id)
