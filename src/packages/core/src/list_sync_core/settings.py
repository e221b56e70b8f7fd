"""Sync settings."""
from functools import lru_cache

from pydantic_settings import BaseSettings


class SyncSettings(BaseSettings):
    """Settings shared by the API and the worker."""

    chunk_size: int = 5000
    poll_max_attempts: int = 40
    poll_delay_seconds: float = 2.0
    key_field: str = "mobile"
    key_fallback_fields: list[str] = ["phone_number"]

    store_backend: str = "sqlite"
    sqlite_path: str = "/data/sync.db"

    klaviyo_api_key: str | None = None
    klaviyo_base_url: str = "https://a.klaviyo.com/api"
    klaviyo_revision: str = "2023-10-15"
    klaviyo_page_size: int = 100

    kudosity_username: str | None = None
    kudosity_password: str | None = None
    kudosity_base_url: str = "https://api.transmitsms.com"

    stager: str = "local"
    staging_dir: str = "/tmp/list-sync-exports"
    staging_public_base_url: str | None = None
    s3_bucket: str | None = None
    s3_prefix: str = "imports"
    aws_region: str | None = None
    aws_access_key_id: str | None = None
    aws_secret_access_key: str | None = None
    presign_expiry_seconds: int = 86400

    http_max_retries: int = 3
    http_retry_delay_seconds: float = 2.0
    http_timeout_seconds: float = 30.0

    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        extra = "ignore"


@lru_cache
def get_settings() -> SyncSettings:
    """Get cached settings."""
    return SyncSettings()
