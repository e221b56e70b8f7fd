"""Chunk task executed by RQ workers."""
from functools import lru_cache

import structlog

from list_sync_core.settings import get_settings
from list_sync_core.sync import SyncOrchestrator
from list_sync_core.wiring import build_orchestrator
from list_sync_worker.dispatch import RQDispatcher
from list_sync_worker.settings import get_redis_url

logger = structlog.get_logger()


@lru_cache
def get_worker_orchestrator() -> SyncOrchestrator:
    """Orchestrator whose continuations go back onto the queue."""
    return build_orchestrator(get_settings(), RQDispatcher(get_redis_url()))


def run_chunk_task(job_id: str, chunk_id: str) -> dict:
    """Process one chunk of an import job, then queue the next."""
    logger.info("chunk_task_started", job_id=job_id, chunk_id=chunk_id)
    outcome = get_worker_orchestrator().run_chunk(job_id, chunk_id)
    return {
        "job_id": job_id,
        "chunk_id": chunk_id,
        "chunk_index": outcome.chunk_index,
        "status": outcome.status.value,
        "success": outcome.success,
        "errors": outcome.errors,
        "skipped": outcome.skipped,
    }
