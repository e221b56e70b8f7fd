"""Profile sources."""
from list_sync_core.source.klaviyo import KlaviyoClient

__all__ = ["KlaviyoClient"]
