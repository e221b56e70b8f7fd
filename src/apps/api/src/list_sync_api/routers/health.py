"""Health check endpoint."""
from fastapi import APIRouter

from list_sync_api.settings import get_settings

router = APIRouter(tags=["health"])


@router.get("/health")
def health():
    """Liveness plus the configured store and dispatch mode."""
    settings = get_settings()
    return {
        "status": "ok",
        "store": settings.store_backend,
        "dispatch": settings.dispatch,
    }
