"""Single-chunk pipeline: fetch, map, stage, submit, poll."""
import time
from dataclasses import dataclass
from typing import Callable, Iterable

import structlog

from list_sync_core.ingest import destination_columns, map_records
from list_sync_core.jobs import Chunk, ChunkStatus, Job, ProgressStore
from list_sync_core.sync.collaborators import (
    ArtifactStager,
    BulkImporter,
    ImportStatus,
    SourceRecordProvider,
)
from list_sync_core.sync.resolver import DestinationResolver
from list_sync_core.util import (
    ErrorKind,
    NoValidRecordsError,
    NotFoundError,
    SyncError,
    utc_now_iso,
)

logger = structlog.get_logger()

PhaseCallback = Callable[[ChunkStatus], None]


def is_open_ended(chunk: Chunk) -> bool:
    """Planned without a profile count; it reads one chunk size from its offset."""
    return chunk.end_offset < chunk.start_offset


@dataclass(frozen=True)
class PollPolicy:
    """How long to wait on a destination import before handing it to monitoring."""

    max_attempts: int = 40
    delay_seconds: float = 2.0


@dataclass(frozen=True)
class ChunkOutcome:
    chunk_id: str
    chunk_index: int
    status: ChunkStatus
    profiles: int = 0
    success: int = 0
    errors: int = 0
    skipped: int = 0
    error_message: str | None = None


class ChunkProcessor:
    """Drive one chunk to completed, failed or monitoring.

    Failures inside the pipeline are recorded on the chunk and never raised;
    only an unknown job or chunk raises NotFoundError.
    """

    def __init__(
        self,
        store: ProgressStore,
        source: SourceRecordProvider,
        stager: ArtifactStager,
        importer: BulkImporter,
        resolver: DestinationResolver,
        poll_policy: PollPolicy | None = None,
        key_field: str = "mobile",
        fallback_fields: Iterable[str] = ("phone_number",),
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.store = store
        self.source = source
        self.stager = stager
        self.importer = importer
        self.resolver = resolver
        self.poll_policy = poll_policy or PollPolicy()
        self.key_field = key_field
        self.fallback_fields = tuple(fallback_fields)
        self.sleep = sleep

    def _load(self, job_id: str, chunk_id: str) -> tuple[Job, Chunk]:
        job = self.store.get_job(job_id)
        if job is None:
            raise NotFoundError(f"Import job {job_id} not found")
        chunk = self.store.get_chunk(chunk_id)
        if chunk is None or chunk.import_id != job_id:
            raise NotFoundError(f"Chunk {chunk_id} not found in import job {job_id}")
        return job, chunk

    def process(
        self, job_id: str, chunk_id: str, on_phase: PhaseCallback | None = None
    ) -> ChunkOutcome:
        """Run the chunk pipeline and record the result on the chunk."""
        job, chunk = self._load(job_id, chunk_id)
        log = logger.bind(job_id=job_id, chunk_id=chunk.id, chunk_index=chunk.index)
        try:
            return self._run(job, chunk, on_phase, log)
        except Exception as e:
            return self._fail(chunk, e, log)

    def _advance(
        self,
        chunk: Chunk,
        status: ChunkStatus,
        on_phase: PhaseCallback | None,
        **fields,
    ) -> None:
        self.store.update_chunk(chunk.id, status=status, **fields)
        if on_phase is not None:
            on_phase(status)

    def _fetch_count(self, job: Job, chunk: Chunk) -> int:
        if is_open_ended(chunk):
            return job.chunk_size
        return chunk.end_offset - chunk.start_offset + 1

    def _complete_empty(self, chunk: Chunk, log) -> ChunkOutcome:
        """An open-ended chunk past the end of the source has nothing to import."""
        self.store.update_chunk(
            chunk.id,
            status=ChunkStatus.COMPLETED,
            profiles_count=0,
            skipped_count=0,
            success_count=0,
            error_count=0,
            completed_at=utc_now_iso(),
        )
        log.info("chunk_source_exhausted", start_offset=chunk.start_offset)
        return ChunkOutcome(chunk.id, chunk.index, ChunkStatus.COMPLETED)

    def _run(self, job: Job, chunk: Chunk, on_phase, log) -> ChunkOutcome:
        self._advance(
            chunk,
            ChunkStatus.PROCESSING,
            on_phase,
            started_at=chunk.started_at or utc_now_iso(),
            completed_at=None,
        )
        records = self.source.fetch(
            job.source_type,
            job.source_id,
            chunk.start_offset,
            self._fetch_count(job, chunk),
        )
        if not records and is_open_ended(chunk):
            return self._complete_empty(chunk, log)
        mapped = map_records(
            records, job.field_mappings, self.key_field, self.fallback_fields
        )
        self.store.update_chunk(
            chunk.id, profiles_count=len(records), skipped_count=mapped.skipped
        )
        log.info(
            "chunk_records_mapped",
            retrieved=len(records),
            valid=len(mapped.valid),
            skipped=mapped.skipped,
            unusual_numbers=mapped.unusual_numbers,
        )
        if not mapped.valid:
            raise NoValidRecordsError(
                f"No valid contacts with a {self.key_field} value in "
                f"{len(records)} retrieved profiles"
            )

        self._advance(chunk, ChunkStatus.UPLOADING, on_phase)
        columns = destination_columns(job.field_mappings, self.key_field)
        artifact = self.stager.stage(
            mapped.valid, columns, f"import_{job.id}_chunk_{chunk.index}"
        )
        self.store.update_chunk(chunk.id, artifact_location=artifact.location)
        log.info("chunk_staged", location=artifact.location, rows=artifact.row_count)

        self._advance(chunk, ChunkStatus.IMPORTING, on_phase)
        # Re-read so a list resolved by chunk 0 since this run started is seen.
        job = self.store.get_job(job.id) or job
        first_chunk = (
            self.store.get_chunk_by_index(job.id, 0) if chunk.index > 0 else None
        )
        target = self.resolver.target_for(job, chunk, first_chunk)
        submitted = self.importer.submit(
            artifact,
            list_id=target.list_id,
            list_name=target.list_name,
            columns=columns,
        )
        self.store.update_chunk(chunk.id, destination_import_id=submitted.import_id)
        log.info(
            "chunk_submitted",
            destination_import_id=submitted.import_id,
            list_id=target.list_id,
            list_name=target.list_name,
            target_source=target.source,
        )
        self.resolver.record_resolution(job, chunk, target, submitted.list_id)

        status = self._poll(submitted.import_id, log)
        if status is None:
            self._advance(chunk, ChunkStatus.MONITORING, on_phase)
            log.warning(
                "chunk_poll_exhausted",
                attempts=self.poll_policy.max_attempts,
                destination_import_id=submitted.import_id,
            )
            return ChunkOutcome(
                chunk.id,
                chunk.index,
                ChunkStatus.MONITORING,
                profiles=len(records),
                skipped=mapped.skipped,
            )

        if status.list_id and chunk.index == 0:
            job = self.store.get_job(job.id) or job
            current = self.store.get_chunk(chunk.id) or chunk
            if not current.resolved_destination_list_id:
                self.resolver.record_resolution(job, current, target, status.list_id)
        return self._settle(chunk, status, log, profiles=len(records), skipped=mapped.skipped)

    def _poll(self, import_id: str, log) -> ImportStatus | None:
        for attempt in range(1, self.poll_policy.max_attempts + 1):
            self.sleep(self.poll_policy.delay_seconds)
            status = self.importer.poll_status(import_id)
            log.debug(
                "chunk_poll",
                attempt=attempt,
                status=status.status,
                processed=status.processed,
                total=status.total,
                errors=status.errors,
            )
            if status.terminal:
                return status
        return None

    def _settle(
        self, chunk: Chunk, status: ImportStatus, log, profiles: int = 0, skipped: int = 0
    ) -> ChunkOutcome:
        now = utc_now_iso()
        if status.failed:
            message = f"Destination import failed: {status.error_details or 'Unknown error'}"
            self.store.update_chunk(
                chunk.id,
                status=ChunkStatus.FAILED,
                error_message=message,
                error_kind=ErrorKind.DESTINATION.value,
                completed_at=now,
            )
            log.warning("chunk_import_failed", error=message)
            return ChunkOutcome(
                chunk.id,
                chunk.index,
                ChunkStatus.FAILED,
                profiles=profiles,
                skipped=skipped,
                error_message=message,
            )

        errors = max(status.errors, 0)
        success = max(status.processed - errors, 0)
        self.store.update_chunk(
            chunk.id,
            status=ChunkStatus.COMPLETED,
            success_count=success,
            error_count=errors,
            error_message=None,
            error_kind=None,
            completed_at=now,
        )
        log.info("chunk_completed", success=success, errors=errors)
        return ChunkOutcome(
            chunk.id,
            chunk.index,
            ChunkStatus.COMPLETED,
            profiles=profiles,
            success=success,
            errors=errors,
            skipped=skipped,
        )

    def _fail(self, chunk: Chunk, exc: Exception, log) -> ChunkOutcome:
        if isinstance(exc, SyncError):
            kind = exc.kind
            log.warning("chunk_failed", error=str(exc), error_kind=kind.value)
        else:
            kind = ErrorKind.INTERNAL
            log.exception("chunk_failed_unexpectedly", error=str(exc))
        message = str(exc) or exc.__class__.__name__
        self.store.update_chunk(
            chunk.id,
            status=ChunkStatus.FAILED,
            error_message=message,
            error_kind=kind.value,
            completed_at=utc_now_iso(),
        )
        return ChunkOutcome(
            chunk.id, chunk.index, ChunkStatus.FAILED, error_message=message
        )

    def refresh(self, job_id: str, chunk_id: str) -> ChunkOutcome | None:
        """Check a monitoring chunk once and settle it if the import has finished."""
        _, chunk = self._load(job_id, chunk_id)
        if chunk.status != ChunkStatus.MONITORING or not chunk.destination_import_id:
            return None
        log = logger.bind(job_id=job_id, chunk_id=chunk.id, chunk_index=chunk.index)
        try:
            status = self.importer.poll_status(chunk.destination_import_id)
        except SyncError as e:
            log.warning("monitoring_refresh_failed", error=str(e))
            return None
        if not status.terminal:
            return None
        log.info("monitoring_chunk_settled", status=status.status)
        return self._settle(
            chunk, status, log, profiles=chunk.profiles_count, skipped=chunk.skipped_count
        )
