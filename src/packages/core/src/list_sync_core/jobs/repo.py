"""Progress store using SQLite."""
import json
import os
import sqlite3
from contextlib import contextmanager
from typing import Any

import structlog

from list_sync_core.jobs.models import Chunk, ChunkStatus, IN_FLIGHT_CHUNK_STATUSES, Job, JobStatus
from list_sync_core.jobs.store import (
    CHUNK_FIELDS,
    CHUNK_RUN_FIELDS,
    JOB_FIELDS,
    ProgressStore,
    check_fields,
)
from list_sync_core.util import utc_now_iso

logger = structlog.get_logger()

SCHEMA = """
CREATE TABLE IF NOT EXISTS import_jobs (
    id TEXT PRIMARY KEY,
    status TEXT NOT NULL,
    source_type TEXT NOT NULL,
    source_id TEXT NOT NULL,
    source_name TEXT,
    destination_id TEXT,
    destination_name TEXT,
    field_mappings TEXT NOT NULL,
    chunk_size INTEGER NOT NULL,
    total_chunks INTEGER DEFAULT 0,
    completed_chunks INTEGER DEFAULT 0,
    failed_chunks INTEGER DEFAULT 0,
    total_profiles INTEGER DEFAULT 0,
    processed_profiles INTEGER DEFAULT 0,
    success_profiles INTEGER DEFAULT 0,
    error_profiles INTEGER DEFAULT 0,
    skipped_profiles INTEGER DEFAULT 0,
    count_known INTEGER DEFAULT 1,
    created_at TEXT,
    updated_at TEXT,
    started_at TEXT,
    completed_at TEXT,
    error_message TEXT
);
CREATE TABLE IF NOT EXISTS import_chunks (
    id TEXT PRIMARY KEY,
    import_id TEXT NOT NULL REFERENCES import_jobs(id),
    chunk_index INTEGER NOT NULL,
    status TEXT NOT NULL,
    start_offset INTEGER NOT NULL,
    end_offset INTEGER NOT NULL,
    profiles_count INTEGER NOT NULL,
    success_count INTEGER DEFAULT 0,
    error_count INTEGER DEFAULT 0,
    skipped_count INTEGER DEFAULT 0,
    attempts INTEGER DEFAULT 0,
    artifact_location TEXT,
    destination_import_id TEXT,
    resolved_destination_list_id TEXT,
    started_at TEXT,
    completed_at TEXT,
    updated_at TEXT,
    error_message TEXT,
    error_kind TEXT,
    UNIQUE (import_id, chunk_index)
);
CREATE INDEX IF NOT EXISTS import_chunks_import_id_idx ON import_chunks (import_id, chunk_index);
"""

_IN_FLIGHT = tuple(s.value for s in IN_FLIGHT_CHUNK_STATUSES)
_IN_FLIGHT_SQL = ", ".join("?" for _ in _IN_FLIGHT)

# "index" is reserved in SQL; the chunk's index lives in chunk_index.
_CHUNK_COLUMN = {"index": "chunk_index"}


def _job_from_row(row: sqlite3.Row) -> Job:
    data = dict(row)
    data["field_mappings"] = json.loads(data["field_mappings"] or "{}")
    return Job.model_validate(data)


def _chunk_from_row(row: sqlite3.Row) -> Chunk:
    data = dict(row)
    data["index"] = data.pop("chunk_index")
    return Chunk.model_validate(data)


def _job_values(fields: dict[str, Any]) -> dict[str, Any]:
    out = {}
    for k, v in fields.items():
        if k == "field_mappings":
            v = json.dumps(v)
        elif hasattr(v, "value"):
            v = v.value
        out[k] = v
    return out


def _chunk_values(fields: dict[str, Any]) -> dict[str, Any]:
    out = {}
    for k, v in fields.items():
        if hasattr(v, "value"):
            v = v.value
        out[_CHUNK_COLUMN.get(k, k)] = v
    return out


class SQLiteProgressStore(ProgressStore):
    """SQLite-backed store; one connection per operation."""

    def __init__(self, path: str | None = None):
        self.path = path or os.environ.get("SQLITE_PATH", "/data/sync.db")
        self._init_db()

    @contextmanager
    def get_conn(self):
        """Get a database connection."""
        conn = sqlite3.connect(self.path, timeout=30, isolation_level=None)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self):
        """Run statements in one write transaction."""
        with self.get_conn() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    def _init_db(self) -> None:
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        with self.get_conn() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(SCHEMA)
        logger.info("progress_store_ready", backend="sqlite", path=self.path)

    def insert_job(self, job: Job) -> None:
        values = _job_values(job.model_dump())
        columns = ", ".join(values)
        params = ", ".join("?" for _ in values)
        with self.transaction() as conn:
            conn.execute(
                f"INSERT INTO import_jobs ({columns}) VALUES ({params})",
                tuple(values.values()),
            )

    def insert_chunks(self, chunks: list[Chunk]) -> None:
        if not chunks:
            return
        rows = [_chunk_values(c.model_dump()) for c in chunks]
        columns = ", ".join(rows[0])
        params = ", ".join("?" for _ in rows[0])
        with self.transaction() as conn:
            conn.executemany(
                f"INSERT INTO import_chunks ({columns}) VALUES ({params})",
                [tuple(r.values()) for r in rows],
            )

    def get_job(self, job_id: str) -> Job | None:
        with self.get_conn() as conn:
            row = conn.execute(
                "SELECT * FROM import_jobs WHERE id = ?", (job_id,)
            ).fetchone()
            if row is None:
                return None
            return _job_from_row(row)

    def list_jobs(self, limit: int = 20) -> list[Job]:
        with self.get_conn() as conn:
            rows = conn.execute(
                "SELECT * FROM import_jobs ORDER BY created_at DESC LIMIT ?", (limit,)
            ).fetchall()
            return [_job_from_row(r) for r in rows]

    def get_chunk(self, chunk_id: str) -> Chunk | None:
        with self.get_conn() as conn:
            row = conn.execute(
                "SELECT * FROM import_chunks WHERE id = ?", (chunk_id,)
            ).fetchone()
            return _chunk_from_row(row) if row else None

    def get_chunk_by_index(self, job_id: str, index: int) -> Chunk | None:
        with self.get_conn() as conn:
            row = conn.execute(
                "SELECT * FROM import_chunks WHERE import_id = ? AND chunk_index = ?",
                (job_id, index),
            ).fetchone()
            return _chunk_from_row(row) if row else None

    def list_chunks(self, job_id: str) -> list[Chunk]:
        with self.get_conn() as conn:
            rows = conn.execute(
                "SELECT * FROM import_chunks WHERE import_id = ? ORDER BY chunk_index",
                (job_id,),
            ).fetchall()
            return [_chunk_from_row(r) for r in rows]

    def update_job(self, job_id: str, **fields: Any) -> None:
        check_fields(fields, JOB_FIELDS, "job")
        fields["updated_at"] = utc_now_iso()
        values = _job_values(fields)
        assignments = ", ".join(f"{k} = ?" for k in values)
        with self.get_conn() as conn:
            conn.execute(
                f"UPDATE import_jobs SET {assignments} WHERE id = ?",
                (*values.values(), job_id),
            )

    def update_chunk(self, chunk_id: str, **fields: Any) -> None:
        check_fields(fields, CHUNK_FIELDS, "chunk")
        fields["updated_at"] = utc_now_iso()
        values = _chunk_values(fields)
        assignments = ", ".join(f"{k} = ?" for k in values)
        with self.get_conn() as conn:
            conn.execute(
                f"UPDATE import_chunks SET {assignments} WHERE id = ?",
                (*values.values(), chunk_id),
            )

    def claim_next_chunk(self, job_id: str, started_at: str) -> Chunk | None:
        with self.transaction() as conn:
            busy = conn.execute(
                f"SELECT COUNT(*) FROM import_chunks WHERE import_id = ? AND status IN ({_IN_FLIGHT_SQL})",
                (job_id, *_IN_FLIGHT),
            ).fetchone()[0]
            if busy:
                return None
            row = conn.execute(
                "SELECT id FROM import_chunks WHERE import_id = ? AND status = ? "
                "ORDER BY chunk_index LIMIT 1",
                (job_id, ChunkStatus.PENDING.value),
            ).fetchone()
            if row is None:
                return None
            conn.execute(
                """
                UPDATE import_chunks SET
                    status = ?,
                    started_at = ?,
                    completed_at = NULL,
                    error_message = NULL,
                    error_kind = NULL,
                    attempts = attempts + 1,
                    updated_at = ?
                WHERE id = ?
                """,
                (ChunkStatus.PROCESSING.value, started_at, utc_now_iso(), row["id"]),
            )
            claimed = conn.execute(
                "SELECT * FROM import_chunks WHERE id = ?", (row["id"],)
            ).fetchone()
            return _chunk_from_row(claimed)

    def reset_chunk(self, chunk_id: str) -> bool:
        assignments = ", ".join(f"{k} = ?" for k in CHUNK_RUN_FIELDS)
        cleared = tuple(0 if k.endswith("_count") else None for k in CHUNK_RUN_FIELDS)
        with self.get_conn() as conn:
            cur = conn.execute(
                f"UPDATE import_chunks SET status = ?, {assignments}, updated_at = ? "
                f"WHERE id = ? AND status NOT IN ({_IN_FLIGHT_SQL})",
                (
                    ChunkStatus.PENDING.value,
                    *cleared,
                    utc_now_iso(),
                    chunk_id,
                    *_IN_FLIGHT,
                ),
            )
            return cur.rowcount == 1

    def replace_pending_chunks(
        self,
        job_id: str,
        chunks: list[Chunk],
        total_profiles: int,
        from_index: int = 0,
        count_known: bool = True,
    ) -> bool:
        rows = [_chunk_values(c.model_dump()) for c in chunks]
        with self.transaction() as conn:
            started = conn.execute(
                "SELECT COUNT(*) FROM import_chunks "
                "WHERE import_id = ? AND chunk_index >= ? AND status != ?",
                (job_id, from_index, ChunkStatus.PENDING.value),
            ).fetchone()[0]
            if started:
                return False
            conn.execute(
                "DELETE FROM import_chunks WHERE import_id = ? AND chunk_index >= ?",
                (job_id, from_index),
            )
            if rows:
                columns = ", ".join(rows[0])
                params = ", ".join("?" for _ in rows[0])
                conn.executemany(
                    f"INSERT INTO import_chunks ({columns}) VALUES ({params})",
                    [tuple(r.values()) for r in rows],
                )
            conn.execute(
                """
                UPDATE import_jobs SET
                    total_chunks = (SELECT COUNT(*) FROM import_chunks c WHERE c.import_id = import_jobs.id),
                    total_profiles = ?,
                    count_known = ?,
                    updated_at = ?
                WHERE id = ?
                """,
                (total_profiles, int(count_known), utc_now_iso(), job_id),
            )
            return True

    def transition_job(self, job_id: str, expected: JobStatus | str, **fields: Any) -> bool:
        check_fields(fields, JOB_FIELDS, "job")
        fields["updated_at"] = utc_now_iso()
        values = _job_values(fields)
        assignments = ", ".join(f"{k} = ?" for k in values)
        with self.get_conn() as conn:
            cur = conn.execute(
                f"UPDATE import_jobs SET {assignments} WHERE id = ? AND status = ?",
                (*values.values(), job_id, JobStatus(expected).value),
            )
            return cur.rowcount == 1

    def recompute_job_totals(self, job_id: str) -> Job | None:
        with self.get_conn() as conn:
            conn.execute(
                """
                UPDATE import_jobs SET
                    total_chunks = (SELECT COUNT(*) FROM import_chunks c WHERE c.import_id = import_jobs.id),
                    completed_chunks = (SELECT COUNT(*) FROM import_chunks c
                        WHERE c.import_id = import_jobs.id AND c.status = 'completed'),
                    failed_chunks = (SELECT COUNT(*) FROM import_chunks c
                        WHERE c.import_id = import_jobs.id AND c.status = 'failed'),
                    processed_profiles = (SELECT COALESCE(SUM(c.profiles_count), 0) FROM import_chunks c
                        WHERE c.import_id = import_jobs.id
                        AND c.status IN ('completed', 'failed', 'monitoring')),
                    success_profiles = (SELECT COALESCE(SUM(c.success_count), 0) FROM import_chunks c
                        WHERE c.import_id = import_jobs.id),
                    error_profiles = (SELECT COALESCE(SUM(c.error_count), 0) FROM import_chunks c
                        WHERE c.import_id = import_jobs.id),
                    skipped_profiles = (SELECT COALESCE(SUM(c.skipped_count), 0) FROM import_chunks c
                        WHERE c.import_id = import_jobs.id),
                    updated_at = ?
                WHERE id = ?
                """,
                (utc_now_iso(), job_id),
            )
        return self.get_job(job_id)
