"""Job orchestration: create, continue, retry and report on sync jobs."""
from typing import Iterable

import structlog

from list_sync_core.ingest import can_supply_key
from list_sync_core.jobs import (
    IN_FLIGHT_CHUNK_STATUSES,
    TERMINAL_CHUNK_STATUSES,
    TERMINAL_JOB_STATUSES,
    Chunk,
    ChunkStatus,
    Job,
    JobCreateRequest,
    JobProgress,
    JobStatus,
    ProgressStore,
)
from list_sync_core.jobs.models import ChunkCounts, ChunkSummary, ProfileCounts, ProgressBlock
from list_sync_core.sync.collaborators import SourceRecordProvider
from list_sync_core.sync.dispatch import Dispatcher
from list_sync_core.sync.plan import DEFAULT_CHUNK_SIZE, ChunkPlan, plan_chunks
from list_sync_core.sync.processor import ChunkOutcome, ChunkProcessor, is_open_ended
from list_sync_core.util import (
    CollaboratorError,
    ConflictError,
    ErrorKind,
    NotFoundError,
    ValidationError,
    generate_id,
    make_chunk_id,
    seconds_between,
    suggestion_for,
    utc_now_iso,
)

logger = structlog.get_logger()


def derive_job_status(chunks: list[Chunk], current: JobStatus | str) -> JobStatus:
    """Job status implied by its chunks.

    A job whose chunks have never left pending keeps its current status
    when that is pending or retrieving.
    """
    current = JobStatus(current)
    if not chunks:
        return current
    statuses = [ChunkStatus(c.status) for c in chunks]

    if all(s == ChunkStatus.COMPLETED for s in statuses):
        return JobStatus.COMPLETE
    if all(s in TERMINAL_CHUNK_STATUSES for s in statuses):
        return JobStatus.COMPLETED_WITH_ERRORS

    for status in statuses:
        if status in IN_FLIGHT_CHUNK_STATUSES:
            return JobStatus(status.value)

    pending = ChunkStatus.PENDING in statuses
    if not pending:
        return JobStatus.MONITORING
    if all(s == ChunkStatus.PENDING for s in statuses) and current in (
        JobStatus.PENDING,
        JobStatus.RETRIEVING,
    ):
        return current
    return JobStatus.IMPORTING


def _percent(part: int, whole: int) -> int:
    if whole <= 0:
        return 0
    return min(100, round(part / whole * 100))


class SyncOrchestrator:
    """Owns the lifecycle of sync jobs.

    Chunks of a job run one at a time. Each finished chunk triggers the
    next through continue_job, which any caller may also invoke to resume
    a job whose trigger was lost.
    """

    def __init__(
        self,
        store: ProgressStore,
        source: SourceRecordProvider,
        processor: ChunkProcessor,
        dispatcher: Dispatcher,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        key_field: str = "mobile",
        fallback_fields: Iterable[str] = ("phone_number",),
    ):
        self.store = store
        self.source = source
        self.processor = processor
        self.dispatcher = dispatcher
        self.chunk_size = chunk_size
        self.key_field = key_field
        self.fallback_fields = tuple(fallback_fields)

    def _require_job(self, job_id: str) -> Job:
        job = self.store.get_job(job_id)
        if job is None:
            raise NotFoundError(f"Import job {job_id} not found")
        return job

    def _validate(self, request: JobCreateRequest) -> None:
        if not request.source_id or not request.source_id.strip():
            raise ValidationError("source_id is required")
        if not request.field_mappings:
            raise ValidationError("field_mappings must map at least one field")
        if not can_supply_key(request.field_mappings, self.key_field):
            raise ValidationError(
                f"field_mappings must map a source field to '{self.key_field}'"
            )
        if request.chunk_size is not None and request.chunk_size <= 0:
            raise ValidationError(f"chunk_size must be positive, got {request.chunk_size}")

    def _count_profiles(self, source_type: str, source_id: str) -> int | None:
        """Source profile count, or None when the lookup fails."""
        try:
            return self.source.count(source_type, source_id)
        except CollaboratorError as e:
            logger.warning(
                "profile_count_failed",
                source_type=source_type,
                source_id=source_id,
                error=str(e),
            )
            return None

    def _chunks_for(self, job_id: str, plans: list[ChunkPlan]) -> list[Chunk]:
        return [
            Chunk(
                id=make_chunk_id(job_id, plan.index),
                import_id=job_id,
                index=plan.index,
                start_offset=plan.start_offset,
                end_offset=plan.end_offset,
                profiles_count=plan.profiles_count,
            )
            for plan in plans
        ]

    def create_job(self, request: JobCreateRequest) -> Job:
        """Validate, plan and persist a job, then start its first chunk."""
        self._validate(request)
        source_type = request.source_type
        source_name = self.source.source_name(source_type, request.source_id)
        # Without a positive count the job starts with one open-ended chunk
        # and grows its plan as chunks come back full.
        total = self._count_profiles(source_type, request.source_id) or 0
        chunk_size = request.chunk_size or self.chunk_size
        plans = plan_chunks(total, chunk_size)

        job = Job(
            id=generate_id(),
            source_type=source_type,
            source_id=request.source_id,
            source_name=source_name,
            destination_id=request.destination_id or None,
            destination_name=request.destination_name or None,
            field_mappings=request.field_mappings,
            chunk_size=chunk_size,
            total_chunks=len(plans),
            total_profiles=total,
            count_known=total > 0,
            created_at=utc_now_iso(),
        )
        self.store.insert_job(job)
        self.store.insert_chunks(self._chunks_for(job.id, plans))
        logger.info(
            "import_job_created",
            job_id=job.id,
            source_type=job.source_type,
            source_id=job.source_id,
            total_profiles=total,
            total_chunks=len(plans),
        )
        self.continue_job(job.id)
        return self.store.get_job(job.id) or job

    def _maybe_replan(self, job: Job) -> None:
        """Re-count a job whose profile count is unknown and plan the rest of it.

        Chunks that have started keep their offsets; the trailing pending
        chunks are replaced by the real plan from the first of them on.
        """
        if job.count_known:
            return
        chunks = self.store.list_chunks(job.id)
        if chunks and all(c.status == ChunkStatus.PENDING and not c.attempts for c in chunks):
            self.store.update_job(job.id, status=JobStatus.RETRIEVING)
        total = self._count_profiles(job.source_type, job.source_id)
        if not total:
            return

        from_index = len(chunks)
        while from_index > 0 and chunks[from_index - 1].status == ChunkStatus.PENDING:
            from_index -= 1
        plans = [p for p in plan_chunks(total, job.chunk_size) if p.index >= from_index]
        replaced = self.store.replace_pending_chunks(
            job.id, self._chunks_for(job.id, plans), total, from_index=from_index
        )
        if replaced:
            logger.info(
                "import_job_replanned",
                job_id=job.id,
                total_profiles=total,
                from_index=from_index,
                planned_chunks=len(plans),
            )

    def _extend_open_plan(self, job_id: str, chunk_id: str, outcome: ChunkOutcome) -> None:
        """Grow or close the plan of a job with no profile count.

        A full open-ended chunk means the source may hold more profiles, so
        another open-ended chunk follows it. A short one marks the end of the
        source and fixes the profile total at what was actually fetched.
        """
        job = self.store.get_job(job_id)
        chunk = self.store.get_chunk(chunk_id)
        if job is None or chunk is None or job.count_known or not is_open_ended(chunk):
            return
        if outcome.status == ChunkStatus.FAILED and chunk.profiles_count == 0:
            # The fetch never answered; a retry of this chunk resumes discovery.
            return

        chunks = self.store.list_chunks(job_id)
        fetched = sum(c.profiles_count for c in chunks)
        if chunk.profiles_count < job.chunk_size:
            self.store.update_job(job_id, count_known=True, total_profiles=fetched)
            logger.info("import_job_source_exhausted", job_id=job_id, total_profiles=fetched)
            return
        if chunks[-1].index != chunk.index:
            return
        index = chunk.index + 1
        start = index * job.chunk_size
        following = Chunk(
            id=make_chunk_id(job_id, index),
            import_id=job_id,
            index=index,
            start_offset=start,
            end_offset=start - 1,
            profiles_count=0,
        )
        if self.store.replace_pending_chunks(
            job_id, [following], fetched, from_index=index, count_known=False
        ):
            logger.info("open_chunk_appended", job_id=job_id, chunk_index=index, fetched=fetched)

    def continue_job(self, job_id: str) -> str | None:
        """Start the next pending chunk unless one is already in flight.

        Safe to call any number of times. Returns the claimed chunk id, or
        None when nothing was started.
        """
        job = self._require_job(job_id)
        self._maybe_replan(job)

        now = utc_now_iso()
        chunk = self.store.claim_next_chunk(job_id, now)
        if chunk is None:
            self._refresh_status(job_id)
            return None

        self.store.update_job(
            job_id,
            status=JobStatus.PROCESSING,
            started_at=job.started_at or now,
            completed_at=None,
            error_message=None,
        )
        logger.info(
            "chunk_claimed",
            job_id=job_id,
            chunk_id=chunk.id,
            chunk_index=chunk.index,
            attempt=chunk.attempts,
        )
        try:
            self.dispatcher.dispatch(job_id, chunk.id, self.run_chunk)
        except Exception as e:
            logger.exception(
                "chunk_dispatch_failed", job_id=job_id, chunk_index=chunk.index, error=str(e)
            )
            message = f"Failed to start chunk {chunk.index}: {e}"
            self.store.update_chunk(
                chunk.id,
                status=ChunkStatus.FAILED,
                error_message=message,
                error_kind=ErrorKind.INTERNAL.value,
                completed_at=utc_now_iso(),
            )
            self.store.recompute_job_totals(job_id)
            self.store.update_job(job_id, status=JobStatus.ERROR, error_message=message)
            return None
        return chunk.id

    def run_chunk(self, job_id: str, chunk_id: str) -> ChunkOutcome:
        """Process one claimed chunk, fold its result into the job, continue."""

        def mirror_phase(status: ChunkStatus) -> None:
            if status in IN_FLIGHT_CHUNK_STATUSES:
                self.store.update_job(job_id, status=JobStatus(ChunkStatus(status).value))

        outcome = self.processor.process(job_id, chunk_id, on_phase=mirror_phase)
        self._extend_open_plan(job_id, chunk_id, outcome)
        self.store.recompute_job_totals(job_id)
        logger.info(
            "chunk_finished",
            job_id=job_id,
            chunk_index=outcome.chunk_index,
            status=ChunkStatus(outcome.status).value,
            success=outcome.success,
            errors=outcome.errors,
            skipped=outcome.skipped,
        )
        self.continue_job(job_id)
        return outcome

    def _refresh_status(self, job_id: str) -> Job | None:
        job = self.store.get_job(job_id)
        if job is None:
            return None
        if job.status == JobStatus.ERROR:
            return job
        chunks = self.store.list_chunks(job_id)
        status = derive_job_status(chunks, job.status)
        if status == job.status:
            return job

        fields = {"status": status}
        if status in TERMINAL_JOB_STATUSES and not job.completed_at:
            fields["completed_at"] = utc_now_iso()
        # The chunks were read after the job; a concurrent writer that moved
        # the job on since then has seen newer chunk states than these.
        if not self.store.transition_job(job_id, job.status, **fields):
            logger.debug(
                "job_status_superseded", job_id=job_id, read_status=job.status, derived=status.value
            )
            return self.store.get_job(job_id)
        if status in TERMINAL_JOB_STATUSES:
            logger.info(
                "import_job_finished",
                job_id=job_id,
                status=status.value,
                completed_chunks=job.completed_chunks,
                failed_chunks=job.failed_chunks,
                duration_seconds=seconds_between(
                    job.started_at, fields.get("completed_at", job.completed_at)
                ),
            )
        return self.store.get_job(job_id)

    def retry_chunk(
        self, job_id: str, chunk_index: int | None = None, chunk_id: str | None = None
    ) -> Chunk:
        """Reset one chunk to pending and resume the job."""
        self._require_job(job_id)
        if chunk_id is not None:
            chunk = self.store.get_chunk(chunk_id)
        elif chunk_index is not None:
            chunk = self.store.get_chunk_by_index(job_id, chunk_index)
        else:
            raise ValidationError("chunk_index or chunk_id is required")
        if chunk is None or chunk.import_id != job_id:
            ref = chunk_id if chunk_id is not None else chunk_index
            raise NotFoundError(f"Chunk {ref} not found in import job {job_id}")

        if not self.store.reset_chunk(chunk.id):
            raise ConflictError(
                f"Chunk {chunk.index} is {chunk.status} and cannot be retried until it finishes"
            )
        self.store.recompute_job_totals(job_id)
        self.store.update_job(
            job_id, status=JobStatus.IMPORTING, completed_at=None, error_message=None
        )
        logger.info(
            "chunk_retry_requested",
            job_id=job_id,
            chunk_index=chunk.index,
            previous_status=chunk.status,
        )
        self.continue_job(job_id)
        return self.store.get_chunk(chunk.id) or chunk

    def get_progress(self, job_id: str, refresh_monitoring: bool = True) -> JobProgress:
        """Current state of a job, resuming it if it stalled."""
        self._require_job(job_id)
        if refresh_monitoring:
            settled = False
            for chunk in self.store.list_chunks(job_id):
                if chunk.status == ChunkStatus.MONITORING:
                    settled = self.processor.refresh(job_id, chunk.id) is not None or settled
            if settled:
                self.store.recompute_job_totals(job_id)
        self.continue_job(job_id)

        job = self._require_job(job_id)
        chunks = self.store.list_chunks(job_id)
        return self._build_progress(job, chunks)

    def _build_progress(self, job: Job, chunks: list[Chunk]) -> JobProgress:
        def count(*statuses) -> int:
            return sum(1 for c in chunks if c.status in statuses)

        completed = count(ChunkStatus.COMPLETED)
        failed = count(ChunkStatus.FAILED)
        total_chunks = len(chunks)
        block = ProgressBlock(
            overall_percent=_percent(completed + failed, total_chunks),
            profile_percent=_percent(job.processed_profiles, job.total_profiles),
            chunks=ChunkCounts(
                total=total_chunks,
                completed=completed,
                failed=failed,
                processing=count(*IN_FLIGHT_CHUNK_STATUSES),
                pending=count(ChunkStatus.PENDING),
                monitoring=count(ChunkStatus.MONITORING),
            ),
            profiles=ProfileCounts(
                total=job.total_profiles,
                processed=job.processed_profiles,
                success=job.success_profiles,
                error=job.error_profiles,
                skipped=job.skipped_profiles,
            ),
        )
        summaries = [
            ChunkSummary(
                id=c.id,
                index=c.index,
                status=c.status,
                profiles_count=c.profiles_count,
                success_count=c.success_count,
                error_count=c.error_count,
                skipped_count=c.skipped_count,
                start_offset=c.start_offset,
                end_offset=c.end_offset,
                destination_import_id=c.destination_import_id,
                resolved_destination_list_id=c.resolved_destination_list_id,
                started_at=c.started_at,
                completed_at=c.completed_at,
                error_message=c.error_message,
                error_kind=c.error_kind,
                suggestion=suggestion_for(c.error_kind) if c.status == ChunkStatus.FAILED else None,
            )
            for c in chunks
        ]
        return JobProgress(
            id=job.id,
            status=job.status,
            source_type=job.source_type,
            source_id=job.source_id,
            source_name=job.source_name,
            destination_id=job.destination_id,
            destination_name=job.destination_name,
            created_at=job.created_at,
            started_at=job.started_at,
            completed_at=job.completed_at,
            count_known=job.count_known,
            error_message=job.error_message,
            progress=block,
            chunks=summaries,
        )

    def list_jobs(self, limit: int = 20) -> list[Job]:
        return self.store.list_jobs(limit=limit)
