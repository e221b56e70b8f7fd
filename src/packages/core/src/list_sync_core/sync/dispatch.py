"""Ways of running a claimed chunk outside the caller's request."""
import threading
from abc import ABC, abstractmethod
from collections import deque
from typing import Callable

import structlog

logger = structlog.get_logger()

ChunkRunner = Callable[[str, str], object]


class Dispatcher(ABC):
    @abstractmethod
    def dispatch(self, job_id: str, chunk_id: str, run: ChunkRunner) -> None:
        """Arrange for run(job_id, chunk_id) to execute.

        Raises if the chunk cannot be handed off at all.
        """


def run_in_background(job_id: str, chunk_id: str, run: ChunkRunner) -> threading.Thread:
    """Start run(job_id, chunk_id) in a daemon thread."""

    def target():
        try:
            run(job_id, chunk_id)
        except Exception as e:
            logger.exception(
                "background_chunk_run_failed",
                job_id=job_id,
                chunk_id=chunk_id,
                error=str(e),
            )

    thread = threading.Thread(
        target=target, name=f"chunk-{chunk_id[:8]}", daemon=True
    )
    thread.start()
    return thread


class ThreadDispatcher(Dispatcher):
    """Run each chunk in its own daemon thread."""

    def dispatch(self, job_id: str, chunk_id: str, run: ChunkRunner) -> None:
        run_in_background(job_id, chunk_id, run)


class InlineDispatcher(Dispatcher):
    """Run chunks synchronously in the calling thread.

    Chunks dispatched while another is running are queued and drained in
    order, so a whole job completes inside the first dispatch call without
    recursing once per chunk.
    """

    def __init__(self):
        self._queue: deque = deque()
        self._draining = False

    def dispatch(self, job_id: str, chunk_id: str, run: ChunkRunner) -> None:
        self._queue.append((job_id, chunk_id, run))
        if self._draining:
            return
        self._draining = True
        try:
            while self._queue:
                queued_job, queued_chunk, queued_run = self._queue.popleft()
                queued_run(queued_job, queued_chunk)
        finally:
            self._draining = False
