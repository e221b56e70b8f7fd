"""Redis queue dispatch with an in-process fallback."""
import structlog
from redis import Redis
from rq import Queue

from list_sync_core.sync.dispatch import ChunkRunner, Dispatcher, run_in_background
from list_sync_worker.settings import get_queue_name

logger = structlog.get_logger()


class RQDispatcher(Dispatcher):
    """Enqueue chunks on RQ; run them in a background thread if Redis is unreachable."""

    def __init__(self, redis_url: str, queue_name: str | None = None, job_timeout: str = "1h"):
        self.redis_url = redis_url
        self.queue_name = queue_name or get_queue_name()
        self.job_timeout = job_timeout
        self._queue: Queue | None = None

    def _get_queue(self) -> Queue:
        if self._queue is None:
            conn = Redis.from_url(self.redis_url)
            self._queue = Queue(self.queue_name, connection=conn)
        return self._queue

    def dispatch(self, job_id: str, chunk_id: str, run: ChunkRunner) -> None:
        from list_sync_worker.tasks import run_chunk_task

        try:
            # Positional args: RQ reserves the job_id keyword for its own job ID.
            self._get_queue().enqueue(
                run_chunk_task, job_id, chunk_id, job_timeout=self.job_timeout
            )
            logger.info("chunk_enqueued", job_id=job_id, chunk_id=chunk_id, queue=self.queue_name)
        except Exception as e:
            logger.warning("rq_enqueue_failed_running_in_thread", job_id=job_id, error=str(e))
            self._queue = None
            run_in_background(job_id, chunk_id, run)
