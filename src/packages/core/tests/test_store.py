"""Tests for the progress stores."""
import threading

import pytest

from list_sync_core.jobs import Chunk, ChunkStatus, Job, JobStatus


def _seed(store, job_id="job-1", chunks=3, created_at="2024-01-01T00:00:00Z"):
    store.insert_job(
        Job(
            id=job_id,
            source_type="lists",
            source_id="L1",
            field_mappings={"mobile": "phone_number"},
            total_chunks=chunks,
            total_profiles=chunks * 10,
            created_at=created_at,
        )
    )
    store.insert_chunks(
        [
            Chunk(
                id=f"{job_id}-c{i}",
                import_id=job_id,
                index=i,
                start_offset=i * 10,
                end_offset=i * 10 + 9,
                profiles_count=10,
            )
            for i in range(chunks)
        ]
    )


def test_round_trip_and_missing(store):
    _seed(store)
    job = store.get_job("job-1")
    assert job.field_mappings == {"mobile": "phone_number"}
    assert job.status == JobStatus.PENDING
    assert [c.index for c in store.list_chunks("job-1")] == [0, 1, 2]
    assert store.get_chunk_by_index("job-1", 2).id == "job-1-c2"
    assert store.get_job("nope") is None
    assert store.get_chunk("nope") is None


def test_updates_merge_named_fields_only(store):
    _seed(store)
    store.update_chunk("job-1-c1", status=ChunkStatus.UPLOADING, artifact_location="mem://a.csv")
    chunk = store.get_chunk("job-1-c1")
    assert chunk.status == ChunkStatus.UPLOADING
    assert chunk.artifact_location == "mem://a.csv"
    assert chunk.profiles_count == 10
    assert chunk.updated_at is not None

    store.update_job("job-1", destination_id="L-5", field_mappings={"mobile": "sms"})
    job = store.get_job("job-1")
    assert job.destination_id == "L-5"
    assert job.field_mappings == {"mobile": "sms"}
    assert job.total_profiles == 30


def test_updates_reject_unknown_fields(store):
    _seed(store)
    with pytest.raises(ValueError):
        store.update_chunk("job-1-c0", colour="blue")
    with pytest.raises(ValueError):
        store.update_job("job-1", id="other")


def test_claim_allows_one_chunk_in_flight(store):
    _seed(store)
    first = store.claim_next_chunk("job-1", "2024-01-01T00:00:01Z")
    assert first.index == 0
    assert first.status == ChunkStatus.PROCESSING
    assert first.attempts == 1
    assert store.claim_next_chunk("job-1", "2024-01-01T00:00:02Z") is None

    store.update_chunk(first.id, status=ChunkStatus.MONITORING)
    second = store.claim_next_chunk("job-1", "2024-01-01T00:00:03Z")
    assert second.index == 1


def test_concurrent_claims_take_one_chunk(store):
    _seed(store, chunks=5)
    claimed = []

    def claim():
        chunk = store.claim_next_chunk("job-1", "2024-01-01T00:00:00Z")
        if chunk is not None:
            claimed.append(chunk.id)

    threads = [threading.Thread(target=claim) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert claimed == ["job-1-c0"]


def test_reset_refuses_in_flight_chunk(store):
    _seed(store)
    chunk = store.claim_next_chunk("job-1", "2024-01-01T00:00:01Z")
    assert store.reset_chunk(chunk.id) is False

    store.update_chunk(
        chunk.id,
        status=ChunkStatus.FAILED,
        error_message="boom",
        error_kind="source",
        success_count=3,
        destination_import_id="imp-1",
    )
    assert store.reset_chunk(chunk.id) is True
    reset = store.get_chunk(chunk.id)
    assert reset.status == ChunkStatus.PENDING
    assert (reset.error_message, reset.error_kind, reset.destination_import_id) == (None, None, None)
    assert reset.success_count == 0
    assert reset.attempts == 1
    assert reset.profiles_count == 10


def test_replace_pending_chunks_only_before_start(store):
    _seed(store, chunks=1)
    new = [
        Chunk(id=f"n{i}", import_id="job-1", index=i, start_offset=i * 5, end_offset=i * 5 + 4, profiles_count=5)
        for i in range(2)
    ]
    assert store.replace_pending_chunks("job-1", new, 10) is True
    assert [c.id for c in store.list_chunks("job-1")] == ["n0", "n1"]
    job = store.get_job("job-1")
    assert (job.total_chunks, job.total_profiles) == (2, 10)

    store.claim_next_chunk("job-1", "2024-01-01T00:00:01Z")
    assert store.replace_pending_chunks("job-1", [], 0) is False
    assert len(store.list_chunks("job-1")) == 2


def test_replace_pending_chunks_from_index_keeps_earlier_chunks(store):
    _seed(store, chunks=2)
    store.update_chunk("job-1-c0", status=ChunkStatus.COMPLETED)
    tail = [
        Chunk(id=f"t{i}", import_id="job-1", index=i, start_offset=i * 10, end_offset=i * 10 + 9, profiles_count=10)
        for i in (1, 2, 3)
    ]
    assert store.replace_pending_chunks("job-1", tail, 40, from_index=1, count_known=False)
    assert [c.id for c in store.list_chunks("job-1")] == ["job-1-c0", "t1", "t2", "t3"]
    job = store.get_job("job-1")
    assert (job.total_chunks, job.total_profiles, job.count_known) == (4, 40, False)

    store.update_chunk("t2", status=ChunkStatus.FAILED)
    assert store.replace_pending_chunks("job-1", [], 20, from_index=1) is False
    assert len(store.list_chunks("job-1")) == 4
    assert store.get_job("job-1").count_known is False


def test_transition_job_only_from_expected_status(store):
    _seed(store)
    store.update_job("job-1", status=JobStatus.COMPLETE)

    assert store.transition_job("job-1", JobStatus.PROCESSING, status=JobStatus.IMPORTING) is False
    assert store.get_job("job-1").status == JobStatus.COMPLETE

    assert store.transition_job("job-1", "complete", status=JobStatus.IMPORTING, completed_at=None)
    assert store.get_job("job-1").status == JobStatus.IMPORTING
    assert store.transition_job("nope", JobStatus.PENDING, status=JobStatus.IMPORTING) is False
    with pytest.raises(ValueError):
        store.transition_job("job-1", JobStatus.IMPORTING, colour="red")


def test_recompute_job_totals(store):
    _seed(store)
    store.update_chunk("job-1-c0", status=ChunkStatus.COMPLETED, success_count=9, error_count=1)
    store.update_chunk("job-1-c1", status=ChunkStatus.FAILED, skipped_count=2)
    store.update_chunk("job-1-c2", status=ChunkStatus.MONITORING)

    job = store.recompute_job_totals("job-1")

    assert (job.total_chunks, job.completed_chunks, job.failed_chunks) == (3, 1, 1)
    assert (job.processed_profiles, job.success_profiles, job.error_profiles) == (30, 9, 1)
    assert job.skipped_profiles == 2
    assert store.recompute_job_totals("nope") is None


def test_concurrent_completions_do_not_lose_counts(store):
    chunks = 12
    _seed(store, chunks=chunks)
    barrier = threading.Barrier(chunks)

    def complete(i):
        barrier.wait()
        store.update_chunk(f"job-1-c{i}", status=ChunkStatus.COMPLETED, success_count=10)
        store.recompute_job_totals("job-1")

    threads = [threading.Thread(target=complete, args=(i,)) for i in range(chunks)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    job = store.get_job("job-1")
    assert job.completed_chunks == chunks
    assert job.success_profiles == chunks * 10
    assert job.processed_profiles == chunks * 10


def test_list_jobs_newest_first(store):
    _seed(store, job_id="old", chunks=1, created_at="2024-01-01T00:00:00Z")
    _seed(store, job_id="new", chunks=1, created_at="2024-02-01T00:00:00Z")
    assert [j.id for j in store.list_jobs()] == ["new", "old"]
    assert [j.id for j in store.list_jobs(limit=1)] == ["new"]
