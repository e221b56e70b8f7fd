"""Worker settings."""
import os

QUEUE_NAME = "list-sync"


def get_redis_url() -> str:
    """Get Redis URL from environment."""
    return os.environ.get("REDIS_URL", "redis://redis:6379/0")


def get_queue_name() -> str:
    return os.environ.get("LIST_SYNC_QUEUE", QUEUE_NAME)
