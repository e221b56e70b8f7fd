"""Shared request dependencies."""
from functools import lru_cache

import structlog

from list_sync_api.settings import get_settings
from list_sync_core.sync import Dispatcher, InlineDispatcher, SyncOrchestrator, ThreadDispatcher
from list_sync_core.wiring import build_orchestrator

logger = structlog.get_logger()


def _build_dispatcher(mode: str, redis_url: str) -> Dispatcher:
    if mode == "rq":
        from list_sync_worker.dispatch import RQDispatcher

        return RQDispatcher(redis_url)
    if mode == "thread":
        return ThreadDispatcher()
    if mode == "inline":
        return InlineDispatcher()
    raise ValueError(f"Unknown dispatch mode: {mode}")


@lru_cache
def get_orchestrator() -> SyncOrchestrator:
    """Process-wide orchestrator built from settings."""
    settings = get_settings()
    dispatcher = _build_dispatcher(settings.dispatch, settings.redis_url)
    logger.info("dispatcher_selected", dispatch=settings.dispatch)
    return build_orchestrator(settings, dispatcher)
