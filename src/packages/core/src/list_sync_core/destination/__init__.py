"""Destination list clients."""
from list_sync_core.destination.kudosity import KudosityClient

__all__ = ["KudosityClient"]
