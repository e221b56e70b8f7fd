"""Import job endpoints."""
import structlog
from fastapi import APIRouter, Depends, Query

from list_sync_api.dependencies import get_orchestrator
from list_sync_core.jobs import JobCreateRequest
from list_sync_core.sync import SyncOrchestrator

router = APIRouter(prefix="/imports", tags=["imports"])
logger = structlog.get_logger()


@router.post("")
def create_import(
    body: JobCreateRequest, orchestrator: SyncOrchestrator = Depends(get_orchestrator)
):
    """Create an import job and start its first chunk."""
    job = orchestrator.create_job(body)
    return {
        "importId": job.id,
        "status": job.status,
        "totalChunks": job.total_chunks,
        "totalProfiles": job.total_profiles,
    }


@router.get("")
def list_imports(
    limit: int = Query(20, ge=1, le=100),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    """Recent import jobs, newest first."""
    jobs = orchestrator.list_jobs(limit=limit)
    return {"imports": [j.model_dump(by_alias=True, mode="json") for j in jobs]}


@router.get("/{import_id}")
def get_import(import_id: str, orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """Job progress with per-chunk detail; resumes a stalled job."""
    return orchestrator.get_progress(import_id).to_response()


@router.post("/{import_id}/continue")
def continue_import(
    import_id: str, orchestrator: SyncOrchestrator = Depends(get_orchestrator)
):
    """Start the next pending chunk if none is running."""
    claimed = orchestrator.continue_job(import_id)
    return {"importId": import_id, "claimedChunkId": claimed}


@router.post("/{import_id}/chunks/{chunk_index}/retry")
def retry_chunk(
    import_id: str,
    chunk_index: int,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    """Reset one chunk to pending and resume the job."""
    chunk = orchestrator.retry_chunk(import_id, chunk_index=chunk_index)
    logger.info("chunk_retry_accepted", import_id=import_id, chunk_index=chunk_index)
    return {
        "importId": import_id,
        "chunk": chunk.model_dump(by_alias=True, mode="json"),
    }
