"""RQ worker entrypoint."""
import structlog
from redis import Redis
from rq import Worker

from list_sync_core.logging import configure_logging
from list_sync_core.settings import get_settings
from list_sync_worker.settings import get_queue_name, get_redis_url
from list_sync_worker.tasks import get_worker_orchestrator, run_chunk_task  # noqa: F401

logger = structlog.get_logger()


def main():
    """Start the worker."""
    configure_logging(get_settings().log_level)
    # Build clients and the store before taking jobs so misconfiguration fails fast.
    get_worker_orchestrator()
    logger.info("worker_ready", queue=get_queue_name())

    conn = Redis.from_url(get_redis_url())
    worker = Worker([get_queue_name()], connection=conn)
    worker.work()


if __name__ == "__main__":
    main()
