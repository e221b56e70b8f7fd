"""Destination list resolution across a job's chunks."""
from dataclasses import dataclass

import structlog

from list_sync_core.jobs import Chunk, Job, ProgressStore
from list_sync_core.sync.collaborators import ListDirectory, ListInfo
from list_sync_core.util.errors import CollaboratorError, DestinationNotFoundError

logger = structlog.get_logger()


@dataclass(frozen=True)
class DestinationTarget:
    """Where a chunk is imported.

    ``source`` names the rule that produced the target: ``job`` (the job's
    resolved list), ``first_chunk`` (chunk 0's resolved list), ``directory``
    (found by name), ``name`` (chunk 0 creating a list) or ``fallback``
    (a later chunk that could not learn chunk 0's list).
    """

    list_id: str | None
    list_name: str | None
    source: str


def default_list_name(job: Job) -> str:
    """The caller's list name, or one derived from the source."""
    if job.destination_name:
        return job.destination_name
    return f"{job.source_name or job.source_id} (Import)"


class DestinationResolver:
    """Decide the destination list for each chunk and propagate chunk 0's list."""

    def __init__(self, store: ProgressStore, directory: ListDirectory | None = None):
        self.store = store
        self.directory = directory

    def target_for(
        self, job: Job, chunk: Chunk, first_chunk: Chunk | None = None
    ) -> DestinationTarget:
        """Pick the list a chunk should be imported into."""
        if chunk.index == 0:
            return self._first_chunk_target(job)

        if job.destination_id:
            return DestinationTarget(job.destination_id, job.destination_name, "job")
        if first_chunk is not None and first_chunk.resolved_destination_list_id:
            return DestinationTarget(
                first_chunk.resolved_destination_list_id, job.destination_name, "first_chunk"
            )

        name = default_list_name(job)
        found = self._find_by_name(name)
        if found is not None:
            return DestinationTarget(found.id, found.name, "directory")

        logger.warning(
            "destination_fallback_to_name",
            job_id=job.id,
            chunk_index=chunk.index,
            list_name=name,
        )
        return DestinationTarget(None, name, "fallback")

    def _first_chunk_target(self, job: Job) -> DestinationTarget:
        if job.destination_id:
            info = self.directory.resolve(job.destination_id) if self.directory else None
            if self.directory is not None and info is None:
                raise DestinationNotFoundError(
                    f"Destination list {job.destination_id} was not found"
                )
            name = info.name if info else job.destination_name
            return DestinationTarget(job.destination_id, name, "job")
        return DestinationTarget(None, default_list_name(job), "name")

    def _find_by_name(self, name: str) -> ListInfo | None:
        if self.directory is None:
            return None
        try:
            return self.directory.find_by_name(name)
        except CollaboratorError as e:
            logger.warning("destination_lookup_failed", list_name=name, error=str(e))
            return None

    def record_resolution(
        self,
        job: Job,
        chunk: Chunk,
        target: DestinationTarget,
        reported_list_id: str | None = None,
    ) -> str | None:
        """Store the list a chunk actually went to.

        Chunk 0's list, and any list found by name, becomes the job's
        destination so later chunks reuse it. A fallback target never
        overrides the job's destination.
        """
        list_id = reported_list_id or target.list_id
        if list_id is None and target.list_name:
            found = self._find_by_name(target.list_name)
            list_id = found.id if found else None
        if list_id is None:
            logger.info(
                "destination_list_pending",
                job_id=job.id,
                chunk_index=chunk.index,
                list_name=target.list_name,
            )
            return None

        self.store.update_chunk(chunk.id, resolved_destination_list_id=list_id)
        if target.source != "fallback" and not job.destination_id:
            self.store.update_job(
                job.id,
                destination_id=list_id,
                destination_name=job.destination_name or target.list_name,
            )
            logger.info(
                "destination_list_resolved",
                job_id=job.id,
                chunk_index=chunk.index,
                list_id=list_id,
            )
        return list_id
