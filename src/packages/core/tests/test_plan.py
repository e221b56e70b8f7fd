"""Tests for chunk planning."""
import pytest

from list_sync_core.sync.plan import count_chunks, plan_chunks
from list_sync_core.util import ValidationError


def test_plan_12000_profiles_in_chunks_of_5000():
    plans = plan_chunks(12000, 5000)
    assert [(p.start_offset, p.end_offset, p.profiles_count) for p in plans] == [
        (0, 4999, 5000),
        (5000, 9999, 5000),
        (10000, 11999, 2000),
    ]
    assert [p.index for p in plans] == [0, 1, 2]


@pytest.mark.parametrize("total,size", [(1, 5000), (5000, 5000), (5001, 5000), (99, 10), (7, 3)])
def test_plan_partitions_range(total, size):
    plans = plan_chunks(total, size)
    assert len(plans) == count_chunks(total, size)
    covered = []
    for p in plans:
        assert 0 < p.profiles_count <= size
        assert p.end_offset - p.start_offset + 1 == p.profiles_count
        covered.extend(range(p.start_offset, p.end_offset + 1))
    assert covered == list(range(total))


def test_plan_zero_profiles_yields_one_empty_chunk():
    plans = plan_chunks(0, 5000)
    assert len(plans) == 1
    assert plans[0].profiles_count == 0
    assert plans[0].start_offset == 0
    assert plans[0].end_offset == -1


def test_plan_rejects_bad_input():
    with pytest.raises(ValidationError):
        plan_chunks(100, 0)
    with pytest.raises(ValidationError):
        plan_chunks(-1, 5000)
