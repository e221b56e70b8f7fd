"""Build the sync object graph from settings."""
import structlog

from list_sync_core.destination import KudosityClient
from list_sync_core.jobs import MemoryProgressStore, ProgressStore, SQLiteProgressStore
from list_sync_core.settings import SyncSettings
from list_sync_core.source import KlaviyoClient
from list_sync_core.stage import LocalArtifactStager, S3ArtifactStager
from list_sync_core.sync import (
    ArtifactStager,
    ChunkProcessor,
    DestinationResolver,
    Dispatcher,
    PollPolicy,
    SyncOrchestrator,
    ThreadDispatcher,
)

logger = structlog.get_logger()


def build_store(settings: SyncSettings) -> ProgressStore:
    if settings.store_backend == "memory":
        return MemoryProgressStore()
    if settings.store_backend == "sqlite":
        return SQLiteProgressStore(settings.sqlite_path)
    raise ValueError(f"Unknown store backend: {settings.store_backend}")


def build_stager(settings: SyncSettings) -> ArtifactStager:
    if settings.stager == "s3":
        return S3ArtifactStager(
            bucket=settings.s3_bucket or "",
            prefix=settings.s3_prefix,
            expires_in=settings.presign_expiry_seconds,
            region=settings.aws_region,
            aws_access_key_id=settings.aws_access_key_id,
            aws_secret_access_key=settings.aws_secret_access_key,
        )
    if settings.stager == "local":
        return LocalArtifactStager(settings.staging_dir, settings.staging_public_base_url)
    raise ValueError(f"Unknown stager: {settings.stager}")


def build_orchestrator(
    settings: SyncSettings,
    dispatcher: Dispatcher | None = None,
    store: ProgressStore | None = None,
) -> SyncOrchestrator:
    """Wire clients, store and processor into an orchestrator."""
    store = store or build_store(settings)
    http = {
        "max_retries": settings.http_max_retries,
        "retry_delay": settings.http_retry_delay_seconds,
        "timeout": settings.http_timeout_seconds,
    }
    source = KlaviyoClient(
        settings.klaviyo_api_key or "",
        base_url=settings.klaviyo_base_url,
        revision=settings.klaviyo_revision,
        page_size=settings.klaviyo_page_size,
        **http,
    )
    destination = KudosityClient(
        settings.kudosity_username or "",
        settings.kudosity_password or "",
        base_url=settings.kudosity_base_url,
        **http,
    )
    processor = ChunkProcessor(
        store,
        source,
        build_stager(settings),
        destination,
        DestinationResolver(store, destination),
        poll_policy=PollPolicy(settings.poll_max_attempts, settings.poll_delay_seconds),
        key_field=settings.key_field,
        fallback_fields=settings.key_fallback_fields,
    )
    logger.info(
        "orchestrator_built",
        store_backend=settings.store_backend,
        stager=settings.stager,
        chunk_size=settings.chunk_size,
    )
    return SyncOrchestrator(
        store,
        source,
        processor,
        dispatcher or ThreadDispatcher(),
        chunk_size=settings.chunk_size,
        key_field=settings.key_field,
        fallback_fields=settings.key_fallback_fields,
    )
