"""Shared fixtures for core tests."""
import pytest

from list_sync_core.jobs import MemoryProgressStore, SQLiteProgressStore


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    """Each progress store implementation in turn."""
    if request.param == "memory":
        return MemoryProgressStore()
    return SQLiteProgressStore(str(tmp_path / "sync.db"))

