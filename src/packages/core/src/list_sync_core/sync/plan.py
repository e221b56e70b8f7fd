"""Chunk planning."""
import math
from dataclasses import dataclass

from list_sync_core.util.errors import ValidationError

DEFAULT_CHUNK_SIZE = 5000


@dataclass(frozen=True)
class ChunkPlan:
    """Offset range of one chunk; end_offset is inclusive."""

    index: int
    start_offset: int
    end_offset: int
    profiles_count: int


def count_chunks(total_profiles: int, chunk_size: int = DEFAULT_CHUNK_SIZE) -> int:
    """Number of chunks needed; never less than one."""
    return max(1, math.ceil(total_profiles / chunk_size))


def plan_chunks(
    total_profiles: int, chunk_size: int = DEFAULT_CHUNK_SIZE
) -> list[ChunkPlan]:
    """Split [0, total_profiles) into ordered chunks of at most chunk_size.

    A job with no known profiles still gets one empty chunk so it can be
    re-planned once the real count is known.
    """
    if chunk_size <= 0:
        raise ValidationError(f"chunk_size must be positive, got {chunk_size}")
    if total_profiles < 0:
        raise ValidationError(f"total_profiles must be non-negative, got {total_profiles}")

    plans = []
    for index in range(count_chunks(total_profiles, chunk_size)):
        start = index * chunk_size
        count = max(0, min(chunk_size, total_profiles - start))
        plans.append(
            ChunkPlan(
                index=index,
                start_offset=start,
                end_offset=start + count - 1,
                profiles_count=count,
            )
        )
    return plans
