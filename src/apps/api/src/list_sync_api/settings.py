"""API settings."""
from functools import lru_cache

from list_sync_core.settings import SyncSettings


class Settings(SyncSettings):
    """Application settings."""

    redis_url: str = "redis://redis:6379/0"
    dispatch: str = "rq"
    cors_origins: list[str] = ["*"]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings."""
    return Settings()
